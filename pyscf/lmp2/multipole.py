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

''' Dipole approximation to the pair energies of very distant pairs.

    The exchange integral (ia|jb) is replaced by the leading term of its
    multipole expansion around the orbital centroids R_i and R_j,

        (ia|jb) ~ [ mu_ia . mu_jb - 3 (mu_ia . n)(mu_jb . n) ] / R^3

    with mu_ia = <i|r|a>, R = |R_j - R_i| and n = (R_j - R_i)/R. The pair energy
    then follows from the semi-canonical amplitudes t = -k/(e_a+e_b-f_ii-f_jj).
'''

import numpy as np

from pyscf import lib
from pyscf.lib import logger

from pyscf.lmp2.errors import ConfigurationError
from pyscf.lmp2.pairs import get_pair_energy


def transition_dipoles(mol, orbocc, orbvir):
    ''' <i|r|a>, shape (nocc,nvir,3)
    '''
    with mol.with_common_origin((0,0,0)):
        r1e = mol.intor_symmetric('int1e_r', comp=3)
    return lib.einsum('xpq,pi,qa->iax', r1e, orbocc, orbvir)

def dipole_exchange_block(mu_i, mu_j, r_ij):
    dist = np.linalg.norm(r_ij)
    if not dist > 0:
        raise ConfigurationError('Dipole approximation needs separated orbital centroids '
                                 '(got separation %s).' % dist)
    n = r_ij / dist
    return (np.dot(mu_i, mu_j.T) - 3 * np.outer(np.dot(mu_i, n), np.dot(mu_j, n))) / dist**3

def dipole_pair_energy(mu_i, mu_j, r_ij, denom, ss_scaling=1., os_scaling=1.):
    kdip = dipole_exchange_block(mu_i, mu_j, r_ij)
    tdip = -kdip / denom
    return get_pair_energy(tdip, kdip, False, ss_scaling, os_scaling)[0]

def set_dipole_pair_energies(pairs, mol, orbocc, orbvir, moevir, fock_diag, centroids,
                             ss_scaling=1., os_scaling=1., log=None):
    ''' Write `dipole_pair_energy` of every pair in `pairs`.

    Args:
        orbocc (np.ndarray):
            Localized occupied orbitals indexed like the pairs.
        fock_diag (np.ndarray):
            Diagonal of the occupied Fock matrix in the localized basis.
        centroids (np.ndarray):
            Orbital centroids, shape (nocc,3).
    '''
    if len(pairs) == 0:
        return pairs
    cput0 = (logger.process_clock(), logger.perf_counter())
    mu = transition_dipoles(mol, orbocc, orbvir)
    evv = moevir[:,None] + moevir
    edip = 0.
    for pair in pairs:
        i, j = pair.i, pair.j
        denom = evv - fock_diag[i] - fock_diag[j]
        pair.dipole_pair_energy = dipole_pair_energy(mu[i], mu[j], centroids[j]-centroids[i],
                                                     denom, ss_scaling, os_scaling)
        edip += pair.dipole_pair_energy
    if log is not None:
        log.info('Dipole correction for %d very distant pairs: %.10g', len(pairs), edip)
        log.timer('Dipole pair energies', *cput0)
    return pairs
