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

''' Pair amplitudes and pair energies in HDF5 files.

    Layout:
        lmp2/pairs/<i>_<j>/t_ij
        lmp2/pairs/<i>_<j>/pno_coeff
        lmp2/pairs/<i>_<j>  attrs: type, pair_energy, delta_pno, ...
'''

import h5py
import numpy as np

from pyscf.lmp2.pairs import OrbitalPair, OrbitalPairSet

_SCALARS = ('delta_pno', 'dipole_pair_energy', 'semicanonical_pair_energy',
            'n_aux_functions')


def dump_pairs(filename, pairs, mode='a'):
    with h5py.File(filename, mode) as f:
        if 'lmp2/pairs' in f:
            del f['lmp2/pairs']
        grp = f.create_group('lmp2/pairs')
        for pair in pairs:
            g = grp.create_group('%d_%d' % pair.key)
            g.attrs['type'] = pair.type
            for key in _SCALARS:
                g.attrs[key] = getattr(pair, key)
            if pair.pair_energy is not None:
                g.attrs['pair_energy'] = pair.pair_energy
            for key in ('t_ij', 'pno_coeff'):
                val = getattr(pair, key)
                if val is not None:
                    g[key] = val
    return filename

def load_pairs(filename, pairs=None):
    ''' Read the stored pairs. If `pairs` is given, amplitudes and PNO coefficients
    are copied into the matching pairs in place; otherwise a new OrbitalPairSet is
    returned.
    '''
    if pairs is None:
        pairs = OrbitalPairSet()
    with h5py.File(filename, 'r') as f:
        grp = f['lmp2/pairs']
        for name in grp:
            g = grp[name]
            i, j = [int(x) for x in name.split('_')]
            pair = pairs.get((i, j))
            if pair is None:
                pair = pairs.add(OrbitalPair(i, j, g.attrs['type']))
            for key in _SCALARS:
                setattr(pair, key, g.attrs[key].item())
            if 'pair_energy' in g.attrs:
                pair.pair_energy = float(g.attrs['pair_energy'])
            if 'pno_coeff' in g:
                pair.pno_coeff = np.asarray(g['pno_coeff'])
            if 't_ij' in g:
                t_ij = np.asarray(g['t_ij'])
                if pair.t_ij is not None and pair.t_ij.shape == t_ij.shape:
                    pair.t_ij[:] = t_ij
                else:
                    pair.t_ij = t_ij
    return pairs
