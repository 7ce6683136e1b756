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

''' Pair natural orbitals (PNOs) from semi-canonical MP2 pair densities.

    The PNOs of pair (i,j) are expanded in the canonical virtual MOs and are
    semi-canonical, i.e., the virtual Fock matrix is diagonal within each pair's
    PNO space.
'''

import numpy as np

from pyscf.lmp2.pairs import DISTANT, get_pair_energy


def make_pair_rdm1(t2, diagonal):
    r''' Virtual pair density of a single pair.

    Math:
        D = T~^T T + T~ T^T,   T~ = (4 T - 2 T^T) / (1 + delta_ij)
    '''
    tt = (4*t2 - 2*t2.T) / (2. if diagonal else 1.)
    dm = np.dot(tt.T, t2) + np.dot(tt, t2.T)
    return (dm + dm.T) * .5

def subspace_eigh(fock, orb):
    if orb.shape[1] == 0:
        return np.zeros(0), orb
    f = np.linalg.multi_dot((orb.T.conj(), fock, orb))
    if orb.shape[1] == 1:
        moe = np.array([f[0,0]])
    else:
        moe, u = np.linalg.eigh(f)
        orb = np.dot(orb, u)
    return moe, orb

def natorb_select(dm, thresh=None, norb=None):
    ''' Natural orbitals of `dm` with occupation above `thresh`, largest first.
    All natural orbitals are kept if both `thresh` and `norb` are None.
    '''
    e, u = np.linalg.eigh(dm)
    e = abs(e)
    order = np.argsort(e)[::-1]
    e = e[order]
    u = u[:,order]
    if norb is not None:
        nkeep = min(max(norb, 0), e.size)
    elif thresh is None:
        nkeep = e.size
    else:
        nkeep = np.count_nonzero(e > thresh)
    return u[:,:nkeep], e


class PNOConstructor:
    r''' Truncates the virtual space of each pair and records the truncation error.

    Args:
        moevir (np.ndarray):
            Canonical virtual orbital energies.
        fock_diag (np.ndarray):
            f_ii of the localized occupied orbitals.
        pno_thresh (float or None):
            Occupation threshold of CLOSE pairs. None keeps every PNO.
        distant_pno_scaling (float):
            DISTANT pairs use pno_thresh * distant_pno_scaling.
    '''
    def __init__(self, moevir, fock_diag, pno_thresh=1e-8, distant_pno_scaling=10.,
                 ss_scaling=1., os_scaling=1.):
        self.moevir = np.asarray(moevir)
        self.fock_diag = np.asarray(fock_diag)
        self.pno_thresh = pno_thresh
        self.distant_pno_scaling = distant_pno_scaling
        self.ss_scaling = ss_scaling
        self.os_scaling = os_scaling
        self._evv = self.moevir[:,None] + self.moevir

    def get_thresh(self, pair):
        if self.pno_thresh is None:
            return None
        if pair.type == DISTANT:
            return self.pno_thresh * self.distant_pno_scaling
        return self.pno_thresh

    def semicanonical_energy(self, t2, k2, diagonal):
        return get_pair_energy(t2, k2, diagonal, self.ss_scaling, self.os_scaling)[0]

    def build(self, pair, kfull):
        ''' Set up `pair` in its PNO basis from the canonical-virtual block (ia|jb).
        '''
        i, j = pair.i, pair.j
        diagonal = i == j
        fij = self.fock_diag[i] + self.fock_diag[j]

        t0 = -kfull / (self._evv - fij)
        e_full = self.semicanonical_energy(t0, kfull, diagonal)

        upno = natorb_select(make_pair_rdm1(t0, diagonal), self.get_thresh(pair))[0]
        moepno, upno = subspace_eigh(np.diag(self.moevir), upno)

        k_ij = np.linalg.multi_dot((upno.T, kfull, upno))
        uncoupled = moepno[:,None] + moepno - fij
        e_trunc = self.semicanonical_energy(-k_ij / uncoupled, k_ij, diagonal)

        pair.pno_coeff = upno
        pair.set_integrals(k_ij, uncoupled)
        pair.semicanonical_pair_energy = e_full
        pair.delta_pno = e_full - e_trunc
        return pair
