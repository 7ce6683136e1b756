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

''' Overlap blocks between the PNO spaces of two pairs.
'''

import threading

import numpy as np


class PairOverlapController:
    r''' S_ij_kl = Q_ij^T Q_kl, where Q are the PNO coefficients in the (orthonormal)
    canonical virtual basis. Blocks are computed on demand and cached.
    '''
    def __init__(self, pairs):
        self.pairs = pairs
        self._cache = {}
        self._lock = threading.Lock()

    def get_overlap(self, key1, key2):
        key = (tuple(key1), tuple(key2))
        with self._lock:
            s = self._cache.get(key)
        if s is None:
            q1 = self.pairs[key1].pno_coeff
            q2 = self.pairs[key2].pno_coeff
            s = np.dot(q1.T, q2)
            with self._lock:
                self._cache[key] = s
        return s

    def clear(self):
        with self._lock:
            self._cache.clear()

    @property
    def nblocks(self):
        return len(self._cache)
