#!/usr/bin/env python
# Copyright 2014-2021 The PySCF Developers. All Rights Reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#

''' Exceptions raised by the local MP2 solver.
'''


class ConfigurationError(ValueError):
    ''' Malformed or missing settings, or a pair metric that cannot be classified.
    '''


class UnsupportedOperatorError(ConfigurationError, NotImplementedError):
    ''' The requested two-electron operator cannot be transformed.
    '''


class NumericalNonConvergenceError(RuntimeError):
    ''' Amplitude optimization hit `max_cycles` before `max_residual` was met.

    Attributes:
        cycle (int):
            Number of cycles that were run.
        residual (float):
            Largest absolute residual element of the last cycle.
    '''
    def __init__(self, cycle, residual):
        self.cycle = cycle
        self.residual = residual
        RuntimeError.__init__(
            self, 'Amplitude optimization not converged after %d cycles '
            '(max. abs. residual = %.6g)' % (cycle, residual))


class RecoverableSingularity(ArithmeticError):
    ''' The DIIS subspace problem could not be solved. Handled inside the
    convergence accelerator by skipping the extrapolation.
    '''
