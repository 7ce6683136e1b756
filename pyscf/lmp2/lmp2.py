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

r''' Local MP2 with pair natural orbitals (spin-restricted, closed shell).

    The occupied space is localized and every pair of localized occupied
    orbitals (i,j) gets its own truncated virtual space of PNOs. Pairs are
    screened by the distance of the orbital centroids:
        - CLOSE and DISTANT pairs: amplitudes are optimized, DISTANT pairs with
          a smaller PNO space.
        - VERY_DISTANT pairs: dipole approximation, no integral transformation.

    The amplitude equations of pair (i,j) in its semi-canonical PNO basis read

        R_ij = K_ij + (e_a + e_b - f_ii - f_jj) T_ij
               - \sum_{k != i} f_ik S_ij,kj T_kj S_ij,kj^T
               - \sum_{k != j} f_kj S_ij,ik T_ik S_ij,ik^T

    and are solved by Jacobi sweeps T_ij <- T_ij - R_ij / (e_a + e_b - f_ii - f_jj)
    accelerated by DIIS. All residuals of a sweep are computed from the
    amplitudes of the previous sweep before any amplitude is updated.
'''

import sys
import numbers

import numpy as np

from pyscf import lib
from pyscf import lo
from pyscf import mp
from pyscf import df
from pyscf.lib import logger
from pyscf import __config__

from pyscf.lmp2 import chkfile
from pyscf.lmp2.ao2mo import (_FourCenterERIs, _DFIncoreERIs, _DFOutcoreERIs,
                        get_range_omega)
from pyscf.lmp2.diis import OrbitalPairDIIS
from pyscf.lmp2.errors import ConfigurationError, NumericalNonConvergenceError
from pyscf.lmp2.multipole import set_dipole_pair_energies
from pyscf.lmp2.overlap import PairOverlapController
from pyscf.lmp2.pairs import (CouplingOrbitalSet, OrbitalPairSet, get_pair_energy, pair_key)
from pyscf.lmp2.parallel import ExecutionContext
from pyscf.lmp2.pno import PNOConstructor
from pyscf.lmp2.screening import (centroid_distance_metric, classify_pairs,
                            orbital_centroids)


def build_coupling_map(pairs, overlap_controller=None):
    r''' Attach one CouplingOrbitalSet per intermediate orbital k to every optimized
    pair, and distribute the overlap controller to all pairs and coupling sets.

    A coupling set for (i,j,k) is created if (i,k) or (k,j) is an optimized pair.
    '''
    optimized = pairs.optimized_pairs()
    occ_idx = sorted(set(i for key in pairs.keys() for i in key))
    if overlap_controller is None:
        overlap_controller = PairOverlapController(pairs)
    for pair in optimized:
        i, j = pair.i, pair.j
        pair.coupling_sets = [CouplingOrbitalSet(i, j, k) for k in occ_idx
                              if (pairs.get_optimized(pair_key(i, k)) is not None or
                                  pairs.get_optimized(pair_key(k, j)) is not None)]
    for pair in pairs:
        pair.set_overlap_controller(overlap_controller)
    return pairs

def generate_exchange_integrals(mlmp2, pairs, eris, fock):
    ''' Set up PNOs, exchange integrals and the coupling map of all CLOSE and
    DISTANT pairs.

    Args:
        pairs (OrbitalPairSet):
            Classified pairs.
        eris:
            Integral holder providing get_exchange(i,j) and get_naux(i,j).
        fock (np.ndarray):
            Occupied Fock matrix in the localized basis.
    '''
    log = logger.new_logger(mlmp2)
    cput0 = (logger.process_clock(), logger.perf_counter())

    moevir = mlmp2.split_mo_energy()[2]
    pnoc = PNOConstructor(moevir, fock.diagonal(), mlmp2.pno_thresh,
                          mlmp2.distant_pno_scaling, mlmp2.ss_scaling, mlmp2.os_scaling)
    optimized = pairs.optimized_pairs()
    for pair in optimized:
        pnoc.build(pair, eris.get_exchange(pair.i, pair.j))
        pair.n_aux_functions = eris.get_naux(pair.i, pair.j)
    cput1 = log.timer('PNO construction ', *cput0)

    build_coupling_map(pairs)
    log.timer_debug1('coupling map', *cput1)

    npair = max(1, len(optimized))
    escmp2 = sum(pair.semicanonical_pair_energy for pair in optimized)
    log.info('-----------------------------------------------------')
    log.info(' PNO Selection and Integral Generation')
    log.info('  Average number of PNOs per pair   %.2f',
             sum(pair.npno for pair in optimized) / npair)
    log.info('  Semi-canonical MP2 energy         %.10f Hartree', escmp2)
    log.info('  Truncation error estimate (PNO)   %.10f Hartree',
             sum(pair.delta_pno for pair in optimized))
    log.info('  Average number of aux functions   %d',
             sum(pair.n_aux_functions for pair in optimized) // npair)
    log.info('  Total number of aux functions     %d', getattr(eris, 'naux', 0))
    log.info('-----------------------------------------------------')
    return pairs

def _pair_residual(pair, pairs, fock, f_cut):
    i, j = pair.i, pair.j
    res = pair.k_ij + pair.uncoupled_term * pair.t_ij
    for kset in pair.coupling_sets:
        k = kset.k
        if k != i and abs(fock[i,k]) >= f_cut:
            if kset.get_kj_pair(pairs) is not None:
                s = kset.get_s_ij_kj()
                res -= fock[i,k] * np.linalg.multi_dot((s, pairs.get_amplitudes(k, j), s.T))
        if k != j and abs(fock[k,j]) >= f_cut:
            if kset.get_ik_pair(pairs) is not None:
                s = kset.get_s_ij_ik()
                res -= fock[k,j] * np.linalg.multi_dot((s, pairs.get_amplitudes(i, k), s.T))
    return res

def optimize_amplitudes(mlmp2, pairs, fock, ctx=None):
    r''' Iterate the amplitudes of all CLOSE/DISTANT pairs to convergence.

    Amplitudes must be initialized (e.g., zero) before the call.

    Args:
        pairs (OrbitalPairSet):
            Pairs with integrals and coupling map.
        fock (np.ndarray):
            Occupied Fock matrix in the localized basis.
        ctx (ExecutionContext):
            Parallelism of the residual evaluation.

    Return:
        (number of cycles, largest absolute residual of the last cycle)

    Raises:
        NumericalNonConvergenceError if `mlmp2.max_cycles` is reached.
    '''
    log = logger.new_logger(mlmp2)
    cput0 = (logger.process_clock(), logger.perf_counter())
    if ctx is None:
        ctx = mlmp2.get_execution_context()

    optimized = pairs.optimized_pairs()
    very_distant = pairs.very_distant_pairs()
    for pair in optimized:
        if pair.t_ij is None or pair.k_ij is None or pair.uncoupled_term is None:
            log.error('Pair (%d,%d) has no integrals or amplitudes.', pair.i, pair.j)
            raise ConfigurationError('Pair (%d,%d) is not initialized' % pair.key)
        if pair.uncoupled_term.size and pair.uncoupled_term.min() <= 0:
            log.warn('Pair (%d,%d): non-positive orbital energy denominator %s',
                     pair.i, pair.j, pair.uncoupled_term.min())

    f_cut = mlmp2.fock_prescreening_thresh
    diis = None
    if mlmp2.diis_space > 0:
        diis = OrbitalPairDIIS(mlmp2, mlmp2.diis_space)

    def residual_worker(chunk):
        rmax = 0.
        for pair in chunk:
            pair.residual = _pair_residual(pair, pairs, fock, f_cut)
            if pair.residual.size:
                rmax = max(rmax, float(abs(pair.residual).max()))
        return rmax

    log.info('Local MP2 amplitude optimization: %d pairs, %s', len(optimized), ctx)
    log.info('%6s %16s %20s %16s', 'Cycle', 'max|residual|', 'E_corr', 'Delta E_corr')
    e_old = 0.
    cycle = 0
    while True:
        cput1 = (logger.process_clock(), logger.perf_counter())
        rmax = 0.
        for rmax_worker in ctx.map_chunks(residual_worker, optimized):
            rmax = max(rmax, rmax_worker)

        for pair in optimized:
            pair.t_ij -= pair.residual / pair.uncoupled_term
        cycle += 1

        if diis is not None and rmax < mlmp2.diis_start_residual:
            diis.optimize(optimized)

        e_new = calculate_energy(optimized, very_distant, mlmp2.ss_scaling,
                                 mlmp2.os_scaling, store=False).sum()
        log.info('%6d %16.6e %20.12f %16.6e', cycle, rmax, e_new, e_new - e_old)
        e_old = e_new
        log.timer_debug1('amplitude cycle %d' % cycle, *cput1)

        if rmax < mlmp2.max_residual:
            break
        if cycle >= mlmp2.max_cycles:
            log.error('Canceling amplitude optimization after %d cycles. NOT CONVERGED '
                      '(max|residual| = %.6g)', cycle, rmax)
            raise NumericalNonConvergenceError(cycle, rmax)

    log.info('Amplitudes converged in %d cycles.', cycle)
    log.timer('Amplitude optimization', *cput0)
    return cycle, rmax

def calculate_energy(pairs, very_distant_pairs, ss_scaling=1., os_scaling=1., store=True):
    r''' Correlation energy of converged pairs.

    Return:
        np.array([E_pairs, E_very_distant, E_pno_truncation]) where E_pairs is the
        sum of the CLOSE/DISTANT pair energies without PNO correction.

    If `store` is True, `pair_energy` of every pair is written (including the PNO
    truncation correction for optimized pairs).
    '''
    e_pairs = e_pno = 0.
    for pair in pairs:
        epair = get_pair_energy(pair.t_ij, pair.k_ij, pair.i == pair.j,
                                ss_scaling, os_scaling)[0]
        e_pairs += epair
        e_pno += pair.delta_pno
        if store:
            pair.pair_energy = epair + pair.delta_pno
    e_dip = 0.
    for pair in very_distant_pairs:
        if pair.semicanonical_pair_energy != 0.:
            epair = pair.semicanonical_pair_energy
        else:
            epair = pair.dipole_pair_energy
        e_dip += epair
        if store:
            pair.pair_energy = epair
    return np.array([e_pairs, e_dip, e_pno])

def get_spin_components(pairs):
    ''' Unscaled same-spin and opposite-spin energies summed over `pairs`.
    '''
    ess = eos = 0.
    for pair in pairs:
        ess_ij, eos_ij = get_pair_energy(pair.t_ij, pair.k_ij, pair.i == pair.j)[1:]
        ess += ess_ij
        eos += eos_ij
    return ess, eos

def fock_from_mo(mymf, s1e=None):
    if s1e is None: s1e = mymf.get_ovlp()
    mo0 = np.dot(s1e, mymf.mo_coeff)
    return np.dot(mo0*mymf.mo_energy, mo0.T.conj())

def is_unitary_related(c1, c2, s=None, thresh=1e-8):
    if c1.shape != c2.shape:
        return False
    if s is None:
        u = np.dot(c1.T.conj(), c2)
    else:
        u = np.linalg.multi_dot((c1.T.conj(), s, c2))
    return abs(np.dot(u.T.conj(), u) - np.eye(u.shape[1])).max() < thresh


class LMP2(lib.StreamObject):
    r''' Local MP2 with pair natural orbitals

    Input:
        mf (PySCF RHF object):
            Mean-field object. Can be None if only pre-built pairs and `fock_mo`
            are used.
        lo_coeff (np.ndarray):
            AO coefficients of localized orbitals spanning the active occupied
            space. Pipek-Mezey orbitals are generated if not given.
        frozen (int or list):
            Same as the `frozen` attr in MP2/CCSD etc. modules.

    Settings:
        ss_scaling, os_scaling : scaling of same-spin / opposite-spin energies.
        max_residual : convergence threshold on max|R_ij|.
        max_cycles : amplitude iterations before giving up.
        diis_start_residual : DIIS is used once max|R_ij| falls below this value.
        diis_space : DIIS subspace size (0 disables DIIS).
        fock_prescreening_thresh : |f_ik| below this value does not couple pairs.
        pno_thresh : PNO occupation threshold (None: no truncation).
        distant_pno_scaling : pno_thresh factor for DISTANT pairs.
        distant_cutoff, very_distant_cutoff : pair screening (Bohr, centroid distance).
        pair_metric : optional (nocc,nocc) array or callable replacing the centroid
                      distance.
        use_four_center_integrals : four-center instead of density-fitted integrals.
        auxbasis : fitting basis for the DF integrals.
        aux_domain_thresh : Mulliken population defining local fitting domains
                            (None: full auxiliary basis for every pair).
        operator : 'coulomb', 'erf' (long-range) or 'erfc' (short-range).
        omega : range-separation parameter for 'erf'/'erfc'.
        nthreads, blas_threads : parallelism of the amplitude optimization.
        chkfile : if set, pairs are dumped to this HDF5 file after `kernel`.
    '''

    ss_scaling = getattr(__config__, 'lmp2_ss_scaling', 1.)
    os_scaling = getattr(__config__, 'lmp2_os_scaling', 1.)
    max_residual = getattr(__config__, 'lmp2_max_residual', 1e-6)
    max_cycles = getattr(__config__, 'lmp2_max_cycles', 100)
    diis_start_residual = getattr(__config__, 'lmp2_diis_start_residual', 1e-2)
    diis_space = getattr(__config__, 'lmp2_diis_space', 10)
    fock_prescreening_thresh = getattr(__config__, 'lmp2_fock_prescreening_thresh', 1e-5)
    pno_thresh = getattr(__config__, 'lmp2_pno_thresh', 1e-8)
    distant_pno_scaling = getattr(__config__, 'lmp2_distant_pno_scaling', 10.)
    distant_cutoff = getattr(__config__, 'lmp2_distant_cutoff', 10.)
    very_distant_cutoff = getattr(__config__, 'lmp2_very_distant_cutoff', 16.)
    metric_pinv_thresh = getattr(__config__, 'lmp2_metric_pinv_thresh', 1e-10)

    # spin-component-scaled coefficients used for `e_corr_scs`
    pss = 0.333
    pos = 1.2

    def __init__(self, mf=None, lo_coeff=None, frozen=None):
        if mf is not None:
            self.mol = mf.mol
            self._scf = mf
            self.verbose = self.mol.verbose
            self.stdout = self.mol.stdout
            self.max_memory = mf.max_memory
        else:
            self.mol = None
            self._scf = None
            self.verbose = logger.NOTE
            self.stdout = sys.stdout
            self.max_memory = lib.param.MAX_MEMORY

        self.lo_coeff = lo_coeff
        self.frozen = frozen

        self.pair_metric = None
        self.use_four_center_integrals = False
        self.auxbasis = None
        self.aux_domain_thresh = None
        self.operator = 'coulomb'
        self.omega = None
        self.force_outcore_ao2mo = False
        self._iaP_to_save = None

        self.nthreads = None
        self.blas_threads = 1
        self.chkfile = None

        # Not input options
        self._nmo = None
        self._nocc = None
        self._s1e = None
        self._mo_occ = None
        self._mo_coeff = None
        self._mo_energy = None
        self.fock_mo = None

        self.pairs = None
        self.energies = None
        self.cycles = None
        self.converged = False
        self.e_corr_ss = None
        self.e_corr_os = None

    @property
    def s1e(self):
        if self._s1e is None:
            self._s1e = self._scf.get_ovlp()
        return self._s1e

    @property
    def mo_occ(self):
        if self._mo_occ is None:
            return self._scf.mo_occ
        else:
            return self._mo_occ
    @mo_occ.setter
    def mo_occ(self, x):
        self._mo_occ = x

    @property
    def mo_coeff(self):
        if self._mo_coeff is None:
            return self._scf.mo_coeff
        else:
            return self._mo_coeff
    @mo_coeff.setter
    def mo_coeff(self, x):
        self._mo_coeff = x

    @property
    def mo_energy(self):
        if self._mo_energy is None:
            return self._scf.mo_energy
        else:
            return self._mo_energy
    @mo_energy.setter
    def mo_energy(self, x):
        self._mo_energy = x

    get_frozen_mask = mp.mp2.get_frozen_mask
    get_nocc = mp.mp2.get_nocc
    get_nmo = mp.mp2.get_nmo
    split_mo_coeff = mp.dfmp2.DFMP2.split_mo_coeff
    split_mo_energy = mp.dfmp2.DFMP2.split_mo_energy
    split_mo_occ = mp.dfmp2.DFMP2.split_mo_occ

    @property
    def nocc(self):
        return self.get_nocc()

    @property
    def nmo(self):
        return self.get_nmo()

    def dump_flags(self, verbose=None):
        log = logger.new_logger(self, verbose)
        log.info('')
        log.info('******** %s ********', self.__class__)
        if self._scf is not None:
            log.info('nocc = %s, nmo = %s', self.nocc, self.nmo)
        if self.frozen is not None:
            log.info('frozen orbitals %s', self.frozen)
        log.info('max_memory %d MB (current use %d MB)',
                 self.max_memory, lib.current_memory()[0])
        log.info('ss_scaling = %s  os_scaling = %s', self.ss_scaling, self.os_scaling)
        log.info('max_residual = %s', self.max_residual)
        log.info('max_cycles = %s', self.max_cycles)
        log.info('diis_start_residual = %s', self.diis_start_residual)
        log.info('diis_space = %s', self.diis_space)
        log.info('fock_prescreening_thresh = %s', self.fock_prescreening_thresh)
        log.info('pno_thresh = %s', self.pno_thresh)
        log.info('distant_pno_scaling = %s', self.distant_pno_scaling)
        log.info('distant_cutoff = %s  very_distant_cutoff = %s',
                 self.distant_cutoff, self.very_distant_cutoff)
        log.info('use_four_center_integrals = %s', self.use_four_center_integrals)
        log.info('auxbasis = %s', self.auxbasis)
        log.info('aux_domain_thresh = %s', self.aux_domain_thresh)
        log.info('metric_pinv_thresh = %s', self.metric_pinv_thresh)
        log.info('operator = %s  omega = %s', self.operator, self.omega)
        log.info('force_outcore_ao2mo = %s', self.force_outcore_ao2mo)
        log.info('nthreads = %s  blas_threads = %s', self.nthreads, self.blas_threads)
        log.info('chkfile = %s', self.chkfile)
        return self

    def check_sanity(self):
        log = logger.new_logger(self)
        def fail(msg, *args):
            log.error(msg, *args)
            raise ConfigurationError(msg % args)
        for name in ('ss_scaling', 'os_scaling'):
            val = getattr(self, name)
            if isinstance(val, bool) or not isinstance(val, numbers.Real):
                fail('%s must be a real number (got %r)', name, val)
        for name in ('max_cycles', 'diis_space'):
            val = getattr(self, name)
            if isinstance(val, bool) or not isinstance(val, numbers.Integral) or val < 0:
                fail('%s must be a non-negative integer (got %r)', name, val)
        if self.max_cycles < 1:
            fail('max_cycles must be at least 1 (got %r)', self.max_cycles)
        for name in ('max_residual', 'diis_start_residual', 'fock_prescreening_thresh'):
            val = getattr(self, name)
            if isinstance(val, bool) or not isinstance(val, numbers.Real) or not val >= 0:
                fail('%s must be a non-negative number (got %r)', name, val)
        if not self.max_residual > 0:
            fail('max_residual must be positive (got %r)', self.max_residual)
        if self.pno_thresh is not None and (isinstance(self.pno_thresh, bool) or
                                            not isinstance(self.pno_thresh, numbers.Real) or
                                            not self.pno_thresh >= 0):
            fail('pno_thresh must be None or non-negative (got %r)', self.pno_thresh)
        for name in ('distant_cutoff', 'very_distant_cutoff'):
            val = getattr(self, name)
            if isinstance(val, bool) or not isinstance(val, numbers.Real):
                fail('%s must be a real number (got %r)', name, val)
        if self.distant_cutoff > self.very_distant_cutoff:
            fail('distant_cutoff (%s) must not exceed very_distant_cutoff (%s)',
                 self.distant_cutoff, self.very_distant_cutoff)
        try:
            get_range_omega(self.operator, self.omega)
            self.get_execution_context()
        except ConfigurationError as err:
            log.error('%s', err)
            raise
        return self

    def get_execution_context(self):
        return ExecutionContext(self.nthreads, self.blas_threads)

    def get_lo_coeff(self):
        ''' Localized active occupied orbitals.
        '''
        orbocc = self.split_mo_coeff()[1]
        if self.lo_coeff is None:
            log = logger.new_logger(self)
            log.info('lo_coeff not given. Localizing occupied orbitals with Pipek-Mezey.')
            mlo = lo.PipekMezey(self.mol, orbocc)
            mlo.verbose = self.verbose
            mlo.stdout = self.stdout
            self.lo_coeff = mlo.kernel()
        elif not is_unitary_related(orbocc, self.lo_coeff, self.s1e, thresh=1e-6):
            logger.error(self, 'lo_coeff does not span the active occupied space.')
            raise ConfigurationError('lo_coeff does not span the active occupied space')
        return self.lo_coeff

    def get_fock_mo(self):
        ''' Occupied Fock matrix in the basis of the localized orbitals.
        '''
        if self.fock_mo is None:
            if self._scf is None:
                logger.error(self, 'Neither fock_mo nor a mean-field object is available.')
                raise ConfigurationError('fock_mo is required without a mean-field object')
            orbocc = self.get_lo_coeff()
            fock = fock_from_mo(self._scf, s1e=self.s1e)
            self.fock_mo = np.linalg.multi_dot((orbocc.T, fock, orbocc))
        return self.fock_mo

    def get_auxmol(self):
        auxbasis = self.auxbasis
        if auxbasis is None:
            auxbasis = getattr(getattr(self._scf, 'with_df', None), 'auxbasis', None)
        if auxbasis is None:
            auxbasis = df.addons.make_auxbasis(self.mol, mp2fit=True)
        return df.addons.make_auxmol(self.mol, auxbasis)

    def ao2mo(self, orbocc=None, orbvir=None):
        log = logger.new_logger(self)
        cput0 = (logger.process_clock(), logger.perf_counter())
        if orbocc is None: orbocc = self.get_lo_coeff()
        if orbvir is None: orbvir = self.split_mo_coeff()[2]

        if self.use_four_center_integrals:
            eris = _FourCenterERIs(self.mol, orbocc, orbvir, self.max_memory,
                                   operator=self.operator, omega=self.omega,
                                   verbose=self.verbose, stdout=self.stdout)
        else:
            auxmol = self.get_auxmol()
            nocc = orbocc.shape[1]
            nvir = orbvir.shape[1]
            naux = auxmol.nao_nr()
            mem_now = self.max_memory - lib.current_memory()[0]
            mem_df = nocc*nvir*naux*orbocc.itemsize/1024**2.
            log.debug('ao2mo est mem= %.2f MB  avail mem= %.2f MB', mem_df, mem_now)
            kwargs = dict(operator=self.operator, omega=self.omega,
                          aux_domain_thresh=self.aux_domain_thresh,
                          metric_pinv_thresh=self.metric_pinv_thresh,
                          verbose=self.verbose, stdout=self.stdout)
            if ((self._iaP_to_save is not None) or self.force_outcore_ao2mo or
                    (mem_df > mem_now*0.5)):
                eris = _DFOutcoreERIs(self.mol, auxmol, orbocc, orbvir, self.max_memory,
                                      iaP_to_save=self._iaP_to_save, **kwargs)
            else:
                eris = _DFIncoreERIs(self.mol, auxmol, orbocc, orbvir, self.max_memory,
                                     **kwargs)
        eris.build()
        log.timer('Integral xform   ', *cput0)
        return eris

    def build_pairs(self, pairs=None, eris=None):
        ''' Screen the pairs, estimate very distant pair energies and generate the
        integrals of all other pairs. Screening is skipped if classified `pairs`
        are given.
        '''
        log = logger.new_logger(self)
        if self._scf is None:
            log.error('A mean-field object is required to build orbital pairs.')
            raise ConfigurationError('mf is required to build orbital pairs')
        orbocc = self.get_lo_coeff()
        orbvir = self.split_mo_coeff()[2]
        moevir = self.split_mo_energy()[2]
        fock = self.get_fock_mo()
        centroids = orbital_centroids(self.mol, orbocc)

        if pairs is None:
            metric = self.pair_metric
            if metric is None:
                metric = centroid_distance_metric(centroids)
            pairs = classify_pairs(orbocc.shape[1], metric, self.distant_cutoff,
                                   self.very_distant_cutoff, log=log)

        set_dipole_pair_energies(pairs.very_distant_pairs(), self.mol, orbocc, orbvir,
                                 moevir, fock.diagonal(), centroids,
                                 self.ss_scaling, self.os_scaling, log=log)
        if eris is None:
            eris = self.ao2mo(orbocc, orbvir)
        generate_exchange_integrals(self, pairs, eris, fock)
        return pairs

    def calculate_energy_correction(self, pairs=None):
        ''' Optimize the pair amplitudes and evaluate the correlation energy.

        Args:
            pairs (OrbitalPairSet or list of OrbitalPair):
                Externally classified pairs. Pairs without integrals are set up
                from the mean-field object; if all CLOSE/DISTANT pairs carry
                integrals and a coupling map, only optimization and energy
                evaluation are performed. Built from scratch if not given.

        Return:
            np.array([E_pairs, E_very_distant, E_pno_truncation])

        Raises:
            ConfigurationError, UnsupportedOperatorError,
            NumericalNonConvergenceError
        '''
        if pairs is None:
            pairs = self.build_pairs()
        else:
            if not isinstance(pairs, OrbitalPairSet):
                pairs = OrbitalPairSet(pairs)
            if any(pair.k_ij is None for pair in pairs.optimized_pairs()):
                pairs = self.build_pairs(pairs)
            elif any(pair.overlap_controller is None or not pair.coupling_sets
                     for pair in pairs.optimized_pairs()):
                build_coupling_map(pairs)
        self.pairs = pairs
        self.converged = False

        self.cycles = optimize_amplitudes(self, pairs, self.get_fock_mo(),
                                          self.get_execution_context())[0]
        self.converged = True

        optimized = pairs.optimized_pairs()
        self.energies = calculate_energy(optimized, pairs.very_distant_pairs(),
                                         self.ss_scaling, self.os_scaling)
        self.e_corr_ss, self.e_corr_os = get_spin_components(optimized)
        return self.energies

    def kernel(self, pairs=None):
        '''The local MP2 driver.
        '''
        self.check_sanity()
        self.dump_flags()
        cput0 = (logger.process_clock(), logger.perf_counter())

        self.calculate_energy_correction(pairs)
        if self.chkfile:
            chkfile.dump_pairs(self.chkfile, self.pairs)

        logger.timer(self, 'LMP2', *cput0)
        self._finalize()
        return self.e_corr

    def _finalize(self):
        if self._scf is not None:
            logger.note(self, 'E(%s) = %.15g  E_corr = %.15g',
                        'LMP2', self.e_tot, self.e_corr)
        else:
            logger.note(self, 'E_corr(LMP2) = %.15g', self.e_corr)
        logger.note(self, 'Pair energies = %.15g  Very distant = %.15g  PNO correction = %.15g',
                    *self.energies)
        logger.note(self, 'LMP2  Ess = %.15g  Eos = %.15g  Escs = %.15g',
                    self.e_corr_ss, self.e_corr_os, self.e_corr_scs)
        return self

    @property
    def e_corr(self):
        if self.energies is None:
            return None
        return float(np.sum(self.energies))

    @property
    def e_corr_scs(self):
        return self.pss*self.e_corr_ss + self.pos*self.e_corr_os

    @property
    def e_tot(self):
        return self.e_corr + self._scf.e_tot

    def dump_chk(self, filename=None):
        if filename is None: filename = self.chkfile
        return chkfile.dump_pairs(filename, self.pairs)

    def load_chk(self, filename=None):
        if filename is None: filename = self.chkfile
        self.pairs = chkfile.load_pairs(filename, self.pairs)
        return self.pairs


if __name__ == '__main__':
    from pyscf import gto, scf

    mol = gto.M(atom='''
    O   -1.485163346097   -0.114724564047    0.000000000000
    H   -1.868415346097    0.762298435953    0.000000000000
    H   -0.533833346097    0.040507435953    0.000000000000
    O    1.416468653903    0.111264435953    0.000000000000
    H    1.746241653903   -0.373945564047   -0.758561000000
    H    1.746241653903   -0.373945564047    0.758561000000
    ''', basis='cc-pvdz', verbose=4)
    mf = scf.RHF(mol).density_fit().run()

    mmp = mp.MP2(mf, frozen=2).run()

    mlmp2 = LMP2(mf, frozen=2)
    mlmp2.pno_thresh = 1e-8
    mlmp2.kernel()
    print('E_corr(LMP2) = %.10f  E_corr(MP2) = %.10f  diff = %.3e' %
          (mlmp2.e_corr, mmp.e_corr, mlmp2.e_corr - mmp.e_corr))
