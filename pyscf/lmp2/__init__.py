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

'''
Local MP2 with pair natural orbitals
'''

__version__ = '0.1.0'

from pyscf.lmp2 import lmp2
from pyscf.lmp2.lmp2 import (LMP2, build_coupling_map, calculate_energy,
                       generate_exchange_integrals, optimize_amplitudes)
from pyscf.lmp2.pairs import (CLOSE, DISTANT, VERY_DISTANT, OrbitalPair, OrbitalPairSet,
                        CouplingOrbitalSet)
from pyscf.lmp2.screening import classify_pairs
from pyscf.lmp2.errors import (ConfigurationError, UnsupportedOperatorError,
                         NumericalNonConvergenceError, RecoverableSingularity)
