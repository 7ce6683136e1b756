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

''' Exchange integrals (ia|jb) between localized occupied and canonical virtual MOs.

    Two integral holders provide the same interface to the integral generation
    stage:
        get_exchange(i, j)  -> (ia|jb), shape (nvir,nvir)
        get_naux(i, j)      -> number of auxiliary functions used for pair (i,j)

    - `_FourCenterERIs`: (ia|jb) from four-center integrals.
    - `_DFIncoreERIs` / `_DFOutcoreERIs`: (ia|P) (P|Q)^-1 (Q|jb) with the metric
      inverted on the pair's local fitting domain. (ia|P) is stored in memory or
      in an HDF5 file.
'''

import numpy as np
import scipy.linalg
import h5py

from pyscf import lib
from pyscf import ao2mo
from pyscf.lib import logger
from pyscf import __config__

from pyscf.lmp2.errors import ConfigurationError, UnsupportedOperatorError

DEBUG_BLKSIZE = getattr(__config__, 'lmp2_DEBUG_BLKSIZE', False)

SUPPORTED_OPERATORS = ('coulomb', 'erf', 'erfc')


def get_range_omega(operator, omega=None):
    ''' Omega passed to `mol.with_range_coulomb`: 0 for the full Coulomb operator,
    +omega for the long-range (erf) and -omega for the short-range (erfc) part.
    '''
    if operator not in SUPPORTED_OPERATORS:
        raise UnsupportedOperatorError('Two-electron operator "%s" is not supported. '
                                       'Choose from %s.' % (operator, SUPPORTED_OPERATORS))
    if operator == 'coulomb':
        return 0.
    if omega is None or not omega > 0:
        raise ConfigurationError('Operator "%s" requires omega > 0 (got %s).'
                                 % (operator, omega))
    return omega if operator == 'erf' else -omega

def pinv_sym(a, thresh=1e-10):
    ''' Pseudo-inverse of a symmetric matrix. Eigenvalues below `thresh` in magnitude
    are dropped.
    '''
    e, u = scipy.linalg.eigh(a)
    mask = abs(e) >= thresh
    return np.dot(u[:,mask] / e[mask], u[:,mask].T)

def mulliken_atom_pop(mol, orb, s1e=None):
    ''' Mulliken population of each orbital on each atom, shape (norb,natm).
    '''
    if s1e is None:
        s1e = mol.intor_symmetric('int1e_ovlp')
    pao = orb * np.dot(s1e, orb)
    pop = np.zeros((orb.shape[1], mol.natm))
    for ia, (p0, p1) in enumerate(mol.aoslice_by_atom()[:,2:4]):
        pop[:,ia] = pao[p0:p1].sum(axis=0)
    return pop

def aux_shell_blocks(auxmol, blksize):
    ''' Split the auxiliary shells into contiguous blocks of at most `blksize`
    functions. A single shell larger than `blksize` forms its own block.

    Yields:
        (sh0, sh1, p0, p1): shell range and the matching function range.
    '''
    ao_loc = auxmol.ao_loc_nr()
    sh0 = 0
    for sh1 in range(1, auxmol.nbas+1):
        if ao_loc[sh1] - ao_loc[sh0] > blksize and sh1-1 > sh0:
            yield sh0, sh1-1, ao_loc[sh0], ao_loc[sh1-1]
            sh0 = sh1-1
    yield sh0, auxmol.nbas, ao_loc[sh0], ao_loc[auxmol.nbas]


class _FourCenterERIs:
    def __init__(self, mol, orbocc, orbvir, max_memory, operator='coulomb', omega=None,
                 verbose=None, stdout=None):
        self.mol = mol
        self.orbocc = orbocc
        self.orbvir = orbvir
        self.omega = get_range_omega(operator, omega)

        self.max_memory = max_memory
        self.verbose = verbose
        self.stdout = stdout

        self.dtype = self.orbocc.dtype
        self.dsize = self.orbocc.itemsize

        self.ovov = None
        self.feri = None

    @property
    def nocc(self):
        return self.orbocc.shape[1]
    @property
    def nvir(self):
        return self.orbvir.shape[1]

    def build(self):
        log = logger.new_logger(self)
        nocc, nvir = self.nocc, self.nvir
        mem_avail = self.max_memory - lib.current_memory()[0]
        mem_ovov = nocc**2*nvir**2 * self.dsize/1e6
        if mem_ovov > mem_avail*0.5:
            self.feri = lib.H5TmpFile()
            log.info('ovov is saved to %s', self.feri.filename)
            self.ovov = self.feri.create_dataset('ovov', (nocc,nvir,nocc,nvir), 'f8',
                                                 chunks=(1,nvir,nocc,nvir))
        else:
            self.ovov = np.empty((nocc,nvir,nocc,nvir), dtype=self.dtype)

        mem_occblk = nvir*nocc*nvir * self.dsize/1e6 * 2
        occ_blksize = min(nocc, max(1, int(np.floor(mem_avail*0.3 / mem_occblk))))
        if DEBUG_BLKSIZE: occ_blksize = max(1,nocc//2)
        log.debug('occ blksize for four-center ao2mo: %d/%d', occ_blksize, nocc)

        with self.mol.with_range_coulomb(self.omega):
            for i0,i1 in lib.prange(0,nocc,occ_blksize):
                eri = ao2mo.general(self.mol, (self.orbocc[:,i0:i1], self.orbvir,
                                               self.orbocc, self.orbvir), compact=False)
                self.ovov[i0:i1] = eri.reshape(i1-i0,nvir,nocc,nvir)
                eri = None
        return self

    def get_exchange(self, i, j):
        return np.asarray(self.ovov[i,:,j,:])

    def get_naux(self, i, j):
        return 0


class _DFIncoreERIs:
    def __init__(self, mol, auxmol, orbocc, orbvir, max_memory, operator='coulomb',
                 omega=None, aux_domain_thresh=None, metric_pinv_thresh=1e-10,
                 verbose=None, stdout=None):
        self.mol = mol
        self.auxmol = auxmol
        self.orbocc = orbocc
        self.orbvir = orbvir
        self.omega = get_range_omega(operator, omega)
        self.aux_domain_thresh = aux_domain_thresh
        self.metric_pinv_thresh = metric_pinv_thresh

        self.max_memory = max_memory
        self.verbose = verbose
        self.stdout = stdout

        self.dtype = self.orbocc.dtype
        self.dsize = self.orbocc.itemsize

        self.iaP = None
        self.j2c = None
        self.atom_pop = None
        self._jinv = {}

    @property
    def nocc(self):
        return self.orbocc.shape[1]
    @property
    def nvir(self):
        return self.orbvir.shape[1]
    @property
    def naux(self):
        return self.auxmol.nao_nr()

    def build(self):
        log = logger.new_logger(self)
        if self.iaP is None:
            self.iaP = np.empty((self.nocc,self.nvir,self.naux), dtype=self.dtype)
        self._build_iaP(log)
        if self.aux_domain_thresh is not None:
            self.atom_pop = mulliken_atom_pop(self.mol, self.orbocc)
        return self

    def _build_iaP(self, log):
        mol, auxmol = self.mol, self.auxmol
        nao = mol.nao_nr()
        nocc, nvir, naux = self.nocc, self.nvir, self.naux
        with auxmol.with_range_coulomb(self.omega):
            self.j2c = auxmol.intor('int2c2e', hermi=1)
        pmol = mol + auxmol
        pmol.cart = mol.cart

        incore = isinstance(self.iaP, np.ndarray)
        mem_avail = self.max_memory - lib.current_memory()[0]
        if incore:
            occ_blksize = nocc
        else:
            mem_occblk = nvir*naux * self.dsize/1e6
            occ_blksize = min(nocc, max(1, int(np.floor(mem_avail*0.3 / mem_occblk))))
            if DEBUG_BLKSIZE: occ_blksize = max(1,nocc//2)
        mem_auxblk = (nao**2 + occ_blksize*(nao+nvir)) * self.dsize/1e6
        aux_blksize = min(naux, max(1, int(np.floor(mem_avail*0.3 / mem_auxblk))))
        if DEBUG_BLKSIZE: aux_blksize = max(1,naux//2)
        log.debug('occ blksize for DF ao2mo: %d/%d', occ_blksize, nocc)
        log.debug('aux blksize for DF ao2mo: %d/%d', aux_blksize, naux)
        aux_blocks = list(aux_shell_blocks(auxmol, aux_blksize))

        with pmol.with_range_coulomb(self.omega):
            for i0,i1 in lib.prange(0,nocc,occ_blksize):
                if incore:
                    OvP = self.iaP[i0:i1]
                else:
                    OvP = np.empty((i1-i0,nvir,naux), dtype=self.dtype)
                for sh0, sh1, p0, p1 in aux_blocks:
                    shls_slice = (0, mol.nbas, 0, mol.nbas, mol.nbas+sh0, mol.nbas+sh1)
                    int3c = pmol.intor('int3c2e', shls_slice=shls_slice)
                    inP = lib.einsum('mi,mnP->inP', self.orbocc[:,i0:i1], int3c)
                    int3c = None
                    OvP[:,:,p0:p1] = lib.einsum('inP,na->iaP', inP, self.orbvir)
                    inP = None
                if not incore:
                    self.iaP[i0:i1] = OvP
                OvP = None

    def get_occ_blk(self, i0, i1):
        return np.asarray(self.iaP[i0:i1], order='C')

    def get_aux_domain(self, i, j):
        ''' Auxiliary function indices of the local fitting domain of pair (i,j), or
        None for the full auxiliary basis.
        '''
        if self.aux_domain_thresh is None:
            return None
        mask = ((self.atom_pop[i] > self.aux_domain_thresh) |
                (self.atom_pop[j] > self.aux_domain_thresh))
        if not mask.any():
            raise ConfigurationError('Empty fitting domain for pair (%d,%d) with '
                                     'aux_domain_thresh = %s' % (i, j, self.aux_domain_thresh))
        aux_loc = self.auxmol.aoslice_by_atom()[:,2:4]
        return np.hstack([np.arange(p0, p1) for p0, p1 in aux_loc[mask]]).astype(int)

    def get_metric_inverse(self, aux_idx=None):
        key = None if aux_idx is None else aux_idx.tobytes()
        if key not in self._jinv:
            j2c = self.j2c if aux_idx is None else self.j2c[np.ix_(aux_idx, aux_idx)]
            self._jinv[key] = pinv_sym(j2c, self.metric_pinv_thresh)
        return self._jinv[key]

    def get_exchange(self, i, j):
        aux_idx = self.get_aux_domain(i, j)
        iP = self.get_occ_blk(i, i+1)[0]
        jP = iP if i == j else self.get_occ_blk(j, j+1)[0]
        if aux_idx is not None:
            iP = iP[:,aux_idx]
            jP = jP[:,aux_idx]
        return np.linalg.multi_dot((iP, self.get_metric_inverse(aux_idx), jP.T))

    def get_naux(self, i, j):
        aux_idx = self.get_aux_domain(i, j)
        return self.naux if aux_idx is None else aux_idx.size


class _DFOutcoreERIs(_DFIncoreERIs):
    def __init__(self, mol, auxmol, orbocc, orbvir, max_memory, iaP_to_save=None, **kwargs):
        _DFIncoreERIs.__init__(self, mol, auxmol, orbocc, orbvir, max_memory, **kwargs)
        self._iaP_to_save = iaP_to_save
        self.feri = None

    def build(self):
        log = logger.new_logger(self)
        if isinstance(self._iaP_to_save, str):
            self.feri = h5py.File(self._iaP_to_save, 'w')
        else:
            self.feri = lib.H5TmpFile()
        log.info('iaP is saved to %s', self.feri.filename)
        shape = (self.nocc,self.nvir,self.naux)
        self.iaP = self.feri.create_dataset('iaP', shape, dtype=self.dtype,
                                            chunks=(1,*shape[1:]))
        return _DFIncoreERIs.build(self)
