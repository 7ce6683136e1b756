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

"""
DIIS over the amplitudes of a set of orbital pairs
"""

import numpy
from pyscf import lib
from pyscf.lib import logger

from pyscf.lmp2.errors import RecoverableSingularity


class OrbitalPairDIIS(lib.diis.DIIS):
    ''' DIIS with the residuals of all pairs as error vector.

    The amplitudes and residuals of the pairs are concatenated in the order the
    pairs are given; the same order must be used in every call.
    '''
    def __init__(self, dev=None, space=10, filename=None):
        lib.diis.DIIS.__init__(self, dev, filename, incore=True)
        self.space = space

    def extrapolate(self, nd=None):
        try:
            xnew = lib.diis.DIIS.extrapolate(self, nd)
        except numpy.linalg.LinAlgError as err:
            raise RecoverableSingularity('DIIS subspace is singular: %s' % err) from err
        if not numpy.all(numpy.isfinite(xnew)):
            raise RecoverableSingularity('DIIS extrapolation is not finite')
        return xnew

    def optimize(self, pairs):
        ''' Overwrite the amplitudes of `pairs` with the DIIS extrapolation.

        Return:
            True if the amplitudes were replaced, False if the extrapolation was
            skipped.
        '''
        sizes = [pair.t_ij.size for pair in pairs]
        if sum(sizes) == 0:
            return False
        t = numpy.hstack([pair.t_ij.ravel() for pair in pairs])
        r = numpy.hstack([pair.residual.ravel() for pair in pairs])
        logger.debug1(self, 'diis-norm(errvec)=%g', numpy.linalg.norm(r))
        try:
            t = self.update(t, xerr=r)
        except RecoverableSingularity as err:
            logger.warn(self, '%s. Extrapolation skipped in this cycle.', err)
            return False

        p1 = 0
        for pair, size in zip(pairs, sizes):
            p0, p1 = p1, p1 + size
            pair.t_ij[:] = t[p0:p1].reshape(pair.t_ij.shape)
        return True
