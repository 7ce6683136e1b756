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

''' Orbital pairs, coupling sets and the pair arena.

    Only pairs (i,j) with i <= j are stored. Amplitudes of the reversed pair
    are obtained by transposition, t(j,i) = t(i,j).T; all other per-pair
    matrices are symmetric under the exchange.

    Pairs never hold references to other pairs. A CouplingOrbitalSet stores the
    keys of its companion pairs and resolves them through the OrbitalPairSet
    when they are needed. A key that is missing, or that belongs to a
    VERY_DISTANT pair, is a screened-away companion and contributes nothing.
'''

import numpy as np

from pyscf.lmp2.errors import ConfigurationError

CLOSE = 'CLOSE'
DISTANT = 'DISTANT'
VERY_DISTANT = 'VERY_DISTANT'
PAIR_TYPES = (CLOSE, DISTANT, VERY_DISTANT)


def pair_key(i, j):
    return (i, j) if i <= j else (j, i)

def get_pair_energy(t_ij, k_ij, diagonal, ss_scaling=1., os_scaling=1.):
    r''' Pair correlation energy from amplitudes and exchange integrals.

    Math:
        E_ss = f * \sum_{ab} (t_ab - t_ba) k_ab
        E_os = f * \sum_{ab} t_ab k_ab
        with f = 1 for i == j and 2 otherwise.

    Return:
        ss_scaling*E_ss + os_scaling*E_os, E_ss, E_os
    '''
    fac = 1. if diagonal else 2.
    ess = fac * float(np.sum((t_ij - t_ij.T) * k_ij))
    eos = fac * float(np.sum(t_ij * k_ij))
    return ss_scaling*ess + os_scaling*eos, ess, eos


class OrbitalPair:
    r''' A correlated pair of occupied orbitals (i,j), i <= j.

    Attributes:
        k_ij (np.ndarray):
            Exchange integrals (ia|jb) in the pair's semi-canonical PNO basis.
        t_ij (np.ndarray):
            Amplitudes, same shape as `k_ij`.
        residual (np.ndarray):
            Residual of the last cycle.
        uncoupled_term (np.ndarray):
            e_a + e_b - f_ii - f_jj in the pair's PNO basis.
        pno_coeff (np.ndarray):
            PNO coefficients in the canonical virtual basis (nvir, npno).
        pair_energy (float):
            None until the energy has been evaluated.
    '''
    def __init__(self, i, j, pair_type=CLOSE):
        if i > j:
            raise ConfigurationError('Orbital pair (%d,%d) must be stored as (%d,%d).'
                                     % (i, j, j, i))
        if pair_type not in PAIR_TYPES:
            raise ConfigurationError('Unknown pair type %s' % pair_type)
        self.i = i
        self.j = j
        self.type = pair_type

        self.k_ij = None
        self.t_ij = None
        self.residual = None
        self.uncoupled_term = None
        self.pno_coeff = None
        self.n_aux_functions = 0

        self.pair_energy = None
        self.delta_pno = 0.
        self.dipole_pair_energy = 0.
        self.semicanonical_pair_energy = 0.

        self.coupling_sets = []
        self.overlap_controller = None

    def __repr__(self):
        return '<OrbitalPair (%d,%d) %s npno=%s>' % (self.i, self.j, self.type, self.npno)

    @property
    def key(self):
        return (self.i, self.j)

    @property
    def npno(self):
        if self.k_ij is None:
            return 0
        return self.k_ij.shape[0]

    def set_integrals(self, k_ij, uncoupled_term):
        ''' Attach the exchange block and the orbital-energy denominators.
        Amplitudes and residual are reset to zero.
        '''
        k_ij = np.asarray(k_ij, dtype=float)
        uncoupled_term = np.asarray(uncoupled_term, dtype=float)
        if k_ij.shape != uncoupled_term.shape or k_ij.ndim != 2:
            raise ConfigurationError('Pair (%d,%d): k_ij %s and uncoupled term %s '
                                     'do not match.' % (self.i, self.j, k_ij.shape,
                                                        uncoupled_term.shape))
        self.k_ij = k_ij
        self.uncoupled_term = uncoupled_term
        self.t_ij = np.zeros_like(k_ij)
        self.residual = np.zeros_like(k_ij)
        return self

    def set_overlap_controller(self, controller):
        self.overlap_controller = controller
        for kset in self.coupling_sets:
            kset.set_overlap_controller(controller)


class CouplingOrbitalSet:
    r''' Coupling of pair (i,j) to the pairs (i,k) and (k,j) through orbital k.

    The projector blocks S_ij_ik and S_ij_kj map the PNO space of the
    companion pair onto the PNO space of (i,j). They are obtained from the
    overlap controller on first use.
    '''
    def __init__(self, i, j, k):
        self.i = i
        self.j = j
        self.k = k
        self.ik = pair_key(i, k)
        self.kj = pair_key(k, j)
        self.overlap_controller = None
        self._s_ij_ik = None
        self._s_ij_kj = None

    def __repr__(self):
        return '<CouplingOrbitalSet (%d,%d) k=%d>' % (self.i, self.j, self.k)

    def set_overlap_controller(self, controller):
        self.overlap_controller = controller
        self._s_ij_ik = self._s_ij_kj = None

    def get_ik_pair(self, pairs):
        return pairs.get_optimized(self.ik)

    def get_kj_pair(self, pairs):
        return pairs.get_optimized(self.kj)

    def get_s_ij_ik(self):
        if self._s_ij_ik is None:
            self._s_ij_ik = self.overlap_controller.get_overlap((self.i, self.j), self.ik)
        return self._s_ij_ik

    def get_s_ij_kj(self):
        if self._s_ij_kj is None:
            self._s_ij_kj = self.overlap_controller.get_overlap((self.i, self.j), self.kj)
        return self._s_ij_kj


class OrbitalPairSet:
    ''' Arena owning all orbital pairs of one calculation, keyed by (i,j), i <= j.
    Iteration follows the sorted key order.
    '''
    def __init__(self, pairs=()):
        self._pairs = {}
        for pair in pairs:
            self.add(pair)

    def add(self, pair):
        if pair.key in self._pairs:
            raise ConfigurationError('Orbital pair %s is defined twice.' % (pair.key,))
        self._pairs[pair.key] = pair
        return pair

    def __len__(self):
        return len(self._pairs)

    def __iter__(self):
        for key in sorted(self._pairs):
            yield self._pairs[key]

    def __contains__(self, key):
        return pair_key(*key) in self._pairs

    def __getitem__(self, key):
        return self._pairs[pair_key(*key)]

    def get(self, key, default=None):
        return self._pairs.get(pair_key(*key), default)

    def keys(self):
        return sorted(self._pairs)

    def by_type(self, *pair_types):
        return [pair for pair in self if pair.type in pair_types]

    def optimized_pairs(self):
        return self.by_type(CLOSE, DISTANT)

    def very_distant_pairs(self):
        return self.by_type(VERY_DISTANT)

    def get_optimized(self, key):
        pair = self._pairs.get(pair_key(*key))
        if pair is None or pair.type == VERY_DISTANT:
            return None
        return pair

    def get_amplitudes(self, i, j):
        pair = self._pairs[pair_key(i, j)]
        if i <= j:
            return pair.t_ij
        else:
            return pair.t_ij.T
