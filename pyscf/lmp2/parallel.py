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

''' Execution context for the pair-parallel regions of the amplitude solver.
'''

import contextlib
import numbers
from concurrent.futures import ThreadPoolExecutor

from pyscf import lib

from pyscf.lmp2.errors import ConfigurationError


class ExecutionContext:
    r''' Parallelism of one calculation.

    Attributes:
        nthreads (int):
            Number of workers sharing the pairs of a parallel region.
        blas_threads (int):
            OpenMP threads of PySCF's numerical kernels called inside a region.
    '''
    def __init__(self, nthreads=None, blas_threads=1):
        if nthreads is None:
            nthreads = lib.num_threads()
        for name, val in (('nthreads', nthreads), ('blas_threads', blas_threads)):
            if not isinstance(val, numbers.Integral) or val < 1:
                raise ConfigurationError('%s must be a positive integer (got %r)' % (name, val))
        self.nthreads = int(nthreads)
        self.blas_threads = int(blas_threads)

    def __repr__(self):
        return '<ExecutionContext nthreads=%d blas_threads=%d>' % (self.nthreads,
                                                                  self.blas_threads)

    def chunks(self, n):
        ''' Static contiguous partition of range(n), one (start, stop) per worker.
        '''
        if n == 0:
            return []
        blksize = (n + self.nthreads - 1) // self.nthreads
        return list(lib.prange(0, n, blksize))

    @contextlib.contextmanager
    def region(self):
        with lib.with_omp_threads(self.blas_threads):
            yield self

    def map_chunks(self, fn, items):
        ''' Call fn(items[p0:p1]) for each worker chunk. Results are returned in
        worker index order.
        '''
        chunks = self.chunks(len(items))
        if len(chunks) <= 1:
            return [fn(items[p0:p1]) for p0, p1 in chunks]
        with self.region(), ThreadPoolExecutor(max_workers=len(chunks)) as executor:
            futures = [executor.submit(fn, items[p0:p1]) for p0, p1 in chunks]
            return [fut.result() for fut in futures]
