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

''' Pair screening.

    Every unordered occupied pair (i,j) is put in exactly one tier:
        CLOSE        : d_ij <  distant_cutoff
        DISTANT      : distant_cutoff <= d_ij < very_distant_cutoff
        VERY_DISTANT : d_ij >= very_distant_cutoff
    Diagonal pairs (i,i) are always CLOSE.
'''

import numbers

import numpy as np

from pyscf import lib
from pyscf.lib import logger

from pyscf.lmp2.errors import ConfigurationError
from pyscf.lmp2.pairs import CLOSE, DISTANT, VERY_DISTANT, OrbitalPair, OrbitalPairSet


def orbital_centroids(mol, orbocc):
    ''' Orbital centroids <i|r|i> in Bohr, shape (nocc,3).
    '''
    with mol.with_common_origin((0,0,0)):
        r1e = mol.intor_symmetric('int1e_r', comp=3)
    return lib.einsum('xpq,pi,qi->ix', r1e, orbocc, orbocc)

def centroid_distance_metric(centroids):
    ''' Distance matrix between orbital centroids.
    '''
    rc = np.asarray(centroids)
    return np.linalg.norm(rc[:,None,:] - rc[None,:,:], axis=2)

def _metric_value(metric, i, j):
    if callable(metric):
        try:
            d = metric(i, j)
        except Exception as err:
            raise ConfigurationError('Distance metric failed for pair (%d,%d): %s'
                                     % (i, j, err)) from err
    else:
        d = metric[i,j]
    if (isinstance(d, bool) or not isinstance(d, numbers.Real)
            or not np.isfinite(d) or d < 0):
        raise ConfigurationError('Pair (%d,%d) cannot be classified with distance %r.'
                                 % (i, j, d))
    return float(d)

def classify_pairs(occ_idx, metric, distant_cutoff, very_distant_cutoff, log=None):
    r''' Assign a screening tier to every pair of occupied orbitals.

    Args:
        occ_idx (int or list of int):
            Occupied orbital indices, or the number of occupied orbitals.
        metric (np.ndarray or callable):
            Either an array indexed as metric[i,j] or a function metric(i,j)
            returning the distance between orbitals i and j.
        distant_cutoff, very_distant_cutoff (float):
            Tier boundaries, same unit as the metric.

    Return:
        OrbitalPairSet holding every pair (i,j), i <= j, once.
    '''
    if isinstance(occ_idx, numbers.Integral):
        occ_idx = range(occ_idx)
    occ_idx = sorted(set(int(i) for i in occ_idx))
    if (distant_cutoff is None or very_distant_cutoff is None or
            distant_cutoff > very_distant_cutoff):
        raise ConfigurationError('Invalid screening cutoffs: distant = %s, very distant = %s'
                                 % (distant_cutoff, very_distant_cutoff))
    if not callable(metric):
        metric = np.asarray(metric)
        nidx = max(occ_idx) + 1 if occ_idx else 0
        if metric.ndim != 2 or metric.shape[0] < nidx or metric.shape[1] < nidx:
            raise ConfigurationError('Distance metric of shape %s does not cover %d orbitals.'
                                     % (metric.shape, nidx))

    pairs = OrbitalPairSet()
    for a, i in enumerate(occ_idx):
        for j in occ_idx[a:]:
            d = _metric_value(metric, i, j)
            if i == j or d < distant_cutoff:
                pair_type = CLOSE
            elif d < very_distant_cutoff:
                pair_type = DISTANT
            else:
                pair_type = VERY_DISTANT
            pairs.add(OrbitalPair(i, j, pair_type))

    if log is not None:
        log.info('Pair screening: %d CLOSE | %d DISTANT | %d VERY_DISTANT',
                 *[len(pairs.by_type(t)) for t in (CLOSE, DISTANT, VERY_DISTANT)])
    return pairs


if __name__ == '__main__':
    import sys
    from pyscf import gto, scf, lo

    mol = gto.M(atom='''
    O   -1.485163346097   -0.114724564047    0.000000000000
    H   -1.868415346097    0.762298435953    0.000000000000
    H   -0.533833346097    0.040507435953    0.000000000000
    O    1.416468653903    0.111264435953    0.000000000000
    H    1.746241653903   -0.373945564047   -0.758561000000
    H    1.746241653903   -0.373945564047    0.758561000000
    ''', basis='6-31g')
    mf = scf.RHF(mol).run()
    orbocc = lo.Boys(mol, mf.mo_coeff[:,mf.mo_occ>0]).kernel()
    dist = centroid_distance_metric(orbital_centroids(mol, orbocc))
    classify_pairs(orbocc.shape[1], dist, 4., 8., log=logger.Logger(sys.stdout, 4))
