#!/usr/bin/env python
# Copyright 2021 The PySCF Developers. All Rights Reserved.
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

import os
import tempfile
import unittest
import numpy as np
from pyscf import __config__
setattr(__config__, 'lmp2_DEBUG_BLKSIZE', True)    # debug blocked ao2mo
from pyscf import gto, scf, mp, lo, df, lib
from pyscf.lmp2 import LMP2, chkfile
from pyscf.lmp2.ao2mo import (_FourCenterERIs, _DFIncoreERIs, _DFOutcoreERIs,
                              aux_shell_blocks)
from pyscf.lmp2.multipole import dipole_pair_energy
from pyscf.lmp2.pairs import OrbitalPair, VERY_DISTANT
from pyscf.lmp2.pno import PNOConstructor
from pyscf.lmp2.errors import ConfigurationError, UnsupportedOperatorError


def pm_localize(mol, orbocc):
    mlo = lo.PipekMezey(mol, orbocc)
    return mlo.kernel()


class Water(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        mol = gto.Mole()
        mol.verbose = 4
        mol.output = '/dev/null'
        mol.atom = '''
        O    0.000000    0.000000    0.117790
        H    0.000000    0.755453   -0.471161
        H    0.000000   -0.755453   -0.471161
        '''
        mol.basis = 'cc-pvdz'
        mol.precision = 1e-10
        mol.build()
        frozen = 1
        mf = scf.RHF(mol).set(conv_tol=1e-11).run()
        mf_df = scf.RHF(mol).density_fit(auxbasis='cc-pvdz-ri').set(conv_tol=1e-11).run()

        nocc = np.count_nonzero(mf.mo_occ)
        cls.mol = mol
        cls.mf = mf
        cls.mf_df = mf_df
        cls.frozen = frozen
        cls.lo_coeff = pm_localize(mol, mf.mo_coeff[:,frozen:nocc])
        cls.lo_coeff_df = pm_localize(mol, mf_df.mo_coeff[:,frozen:nocc])
    @classmethod
    def tearDownClass(cls):
        cls.mol.stdout.close()
        del cls.mol, cls.mf, cls.mf_df, cls.lo_coeff, cls.lo_coeff_df

    def make_lmp2(self, mf, lo_coeff, **kwargs):
        mlmp2 = LMP2(mf, lo_coeff, frozen=self.frozen)
        # no truncation, no screening
        mlmp2.pno_thresh = None
        mlmp2.fock_prescreening_thresh = 0
        mlmp2.distant_cutoff = 1e3
        mlmp2.very_distant_cutoff = 1e4
        mlmp2.max_residual = 1e-9
        return mlmp2.set(**kwargs)

    def test_four_center_vs_mp2(self):
        emp2 = mp.MP2(self.mf, frozen=self.frozen).run().e_corr
        mlmp2 = self.make_lmp2(self.mf, self.lo_coeff, use_four_center_integrals=True)
        mlmp2.kernel()
        self.assertAlmostEqual(mlmp2.e_corr, emp2, 7)
        self.assertAlmostEqual(mlmp2.energies[1], 0, 12)
        self.assertAlmostEqual(mlmp2.energies[2], 0, 9)
        self.assertAlmostEqual(mlmp2.e_tot, self.mf.e_tot + emp2, 7)

    def test_df_vs_dfmp2(self):
        emp2 = mp.dfmp2.DFMP2(self.mf_df, frozen=self.frozen).run().e_corr
        mlmp2 = self.make_lmp2(self.mf_df, self.lo_coeff_df)
        mlmp2.kernel()
        self.assertAlmostEqual(mlmp2.e_corr, emp2, 7)

        mlmp2 = self.make_lmp2(self.mf_df, self.lo_coeff_df, force_outcore_ao2mo=True)
        mlmp2.kernel()
        self.assertAlmostEqual(mlmp2.e_corr, emp2, 7)

        # fitting domains covering every atom reproduce the full fit
        mlmp2 = self.make_lmp2(self.mf_df, self.lo_coeff_df, aux_domain_thresh=-1.)
        mlmp2.kernel()
        self.assertAlmostEqual(mlmp2.e_corr, emp2, 7)

    def test_blocked_df_integrals(self):
        mol = self.mol
        nocc = np.count_nonzero(self.mf_df.mo_occ)
        orbvir = self.mf_df.mo_coeff[:,nocc:]
        auxmol = df.addons.make_auxmol(mol, 'cc-pvdz-ri')
        nao, naux = mol.nao_nr(), auxmol.nao_nr()
        int3c = df.incore.aux_e2(mol, auxmol, intor='int3c2e', aosym='s1')
        int3c = int3c.reshape(nao,nao,naux)
        ref = lib.einsum('mi,mnP,na->iaP', self.lo_coeff_df, int3c, orbvir)

        blocks = list(aux_shell_blocks(auxmol, 10))
        self.assertTrue(len(blocks) > 2)
        self.assertEqual(blocks[0][2], 0)
        self.assertEqual(blocks[-1][3], naux)
        for (sh0, sh1, p0, p1), nxt in zip(blocks[:-1], blocks[1:]):
            self.assertEqual(sh1, nxt[0])
            self.assertEqual(p1, nxt[2])

        eris = _DFIncoreERIs(mol, auxmol, self.lo_coeff_df, orbvir, 4000, verbose=0).build()
        self.assertAlmostEqual(abs(eris.iaP - ref).max(), 0, 10)
        eris = _DFOutcoreERIs(mol, auxmol, self.lo_coeff_df, orbvir, 4000, verbose=0).build()
        self.assertAlmostEqual(abs(eris.iaP[:] - ref).max(), 0, 10)

    def test_aux_domains(self):
        mlmp2 = self.make_lmp2(self.mf_df, self.lo_coeff_df, aux_domain_thresh=.5)
        mlmp2.kernel()
        naux = mlmp2.get_auxmol().nao_nr()
        naux_pairs = [pair.n_aux_functions for pair in mlmp2.pairs]
        self.assertTrue(max(naux_pairs) <= naux)
        self.assertTrue(min(naux_pairs) < naux)
        self.assertTrue(mlmp2.e_corr < 0)

        mlmp2 = self.make_lmp2(self.mf_df, self.lo_coeff_df, aux_domain_thresh=10.)
        self.assertRaises(ConfigurationError, mlmp2.kernel)

    def test_pno_truncation(self):
        emp2 = mp.dfmp2.DFMP2(self.mf_df, frozen=self.frozen).run().e_corr
        mlmp2 = self.make_lmp2(self.mf_df, self.lo_coeff_df, pno_thresh=1e-6)
        mlmp2.kernel()
        nvir = self.mol.nao_nr() - np.count_nonzero(self.mf_df.mo_occ)
        self.assertTrue(all(pair.npno <= nvir for pair in mlmp2.pairs))
        self.assertTrue(any(pair.npno < nvir for pair in mlmp2.pairs))
        self.assertTrue(mlmp2.energies[2] < 0)
        self.assertAlmostEqual(mlmp2.e_corr, emp2, 3)

    def test_default_localization(self):
        emp2 = mp.MP2(self.mf, frozen=self.frozen).run().e_corr
        mlmp2 = self.make_lmp2(self.mf, None, use_four_center_integrals=True)
        mlmp2.kernel()
        self.assertEqual(mlmp2.lo_coeff.shape[1], len(mlmp2.fock_mo))
        self.assertAlmostEqual(mlmp2.e_corr, emp2, 7)

    def test_wrong_lo_coeff(self):
        nocc = np.count_nonzero(self.mf.mo_occ)
        mlmp2 = self.make_lmp2(self.mf, self.mf.mo_coeff[:,nocc:nocc+4])
        self.assertRaises(ConfigurationError, mlmp2.kernel)

    def test_operators(self):
        mlmp2 = self.make_lmp2(self.mf, self.lo_coeff, operator='yukawa')
        self.assertRaises(UnsupportedOperatorError, mlmp2.kernel)
        self.assertTrue(mlmp2.pairs is None)
        mlmp2 = self.make_lmp2(self.mf, self.lo_coeff, operator='erf')
        self.assertRaises(ConfigurationError, mlmp2.kernel)

        nocc = np.count_nonzero(self.mf.mo_occ)
        orbvir = self.mf.mo_coeff[:,nocc:]
        def exchange(operator, omega=None):
            eris = _FourCenterERIs(self.mol, self.lo_coeff, orbvir, 4000,
                                   operator=operator, omega=omega, verbose=0)
            return eris.build().get_exchange(0, 2)
        kfull = exchange('coulomb')
        klr = exchange('erf', .5)
        ksr = exchange('erfc', .5)
        self.assertAlmostEqual(abs(klr + ksr - kfull).max(), 0, 9)

        ecoul = self.make_lmp2(self.mf, self.lo_coeff, use_four_center_integrals=True).kernel()
        elr = self.make_lmp2(self.mf, self.lo_coeff, use_four_center_integrals=True,
                             operator='erf', omega=.5).kernel()
        self.assertTrue(ecoul < elr < 0)

    def test_chkfile(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            fname = os.path.join(tmpdir, 'lmp2.chk')
            mlmp2 = self.make_lmp2(self.mf_df, self.lo_coeff_df, chkfile=fname)
            mlmp2.kernel()
            pairs = chkfile.load_pairs(fname)
        self.assertEqual(pairs.keys(), mlmp2.pairs.keys())
        self.assertAlmostEqual(sum(pair.pair_energy for pair in pairs), mlmp2.e_corr, 9)

    def test_pno_constructor(self):
        nocc = np.count_nonzero(self.mf_df.mo_occ)
        mlmp2 = self.make_lmp2(self.mf_df, self.lo_coeff_df)
        fock = mlmp2.get_fock_mo()
        moevir = self.mf_df.mo_energy[nocc:]
        eris = mlmp2.ao2mo()
        kfull = eris.get_exchange(1, 1)

        pair = OrbitalPair(1, 1)
        PNOConstructor(moevir, fock.diagonal(), None).build(pair, kfull)
        self.assertEqual(pair.npno, moevir.size)
        self.assertAlmostEqual(pair.delta_pno, 0, 12)
        self.assertAlmostEqual(abs(pair.k_ij - pair.k_ij.T).max(), 0, 12)
        fpno = np.linalg.multi_dot((pair.pno_coeff.T, np.diag(moevir), pair.pno_coeff))
        self.assertAlmostEqual(abs(fpno - np.diag(fpno.diagonal())).max(), 0, 9)

        pair = OrbitalPair(1, 1)
        PNOConstructor(moevir, fock.diagonal(), 1e-5).build(pair, kfull)
        self.assertTrue(0 < pair.npno < moevir.size)
        self.assertTrue(pair.semicanonical_pair_energy < 0)
        self.assertTrue(pair.delta_pno < 0)


class WaterDimer(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        mol = gto.Mole()
        mol.verbose = 4
        mol.output = '/dev/null'
        mol.atom = '''
        O   -1.485163346097   -0.114724564047    0.000000000000
        H   -1.868415346097    0.762298435953    0.000000000000
        H   -0.533833346097    0.040507435953    0.000000000000
        O    1.416468653903    0.111264435953    0.000000000000
        H    1.746241653903   -0.373945564047   -0.758561000000
        H    1.746241653903   -0.373945564047    0.758561000000
        '''
        mol.basis = 'cc-pvdz'
        mol.precision = 1e-10
        mol.build()
        cls.mol = mol
        cls.mf = scf.RHF(mol).density_fit(auxbasis='cc-pvdz-ri').run()
        cls.frozen = 2
        cls.emp2 = mp.dfmp2.DFMP2(cls.mf, frozen=cls.frozen).run().e_corr
    @classmethod
    def tearDownClass(cls):
        cls.mol.stdout.close()
        del cls.mol, cls.mf, cls.emp2

    def test_default_settings(self):
        mlmp2 = LMP2(self.mf, frozen=self.frozen)
        mlmp2.kernel()
        self.assertAlmostEqual(mlmp2.e_corr, self.emp2, 3)
        self.assertTrue(mlmp2.converged)
        self.assertAlmostEqual(sum(pair.pair_energy for pair in mlmp2.pairs),
                               mlmp2.e_corr, 9)

    def test_screening(self):
        mlmp2 = LMP2(self.mf, frozen=self.frozen)
        mlmp2.distant_cutoff = 3.
        mlmp2.very_distant_cutoff = 5.
        mlmp2.kernel()
        vd_pairs = mlmp2.pairs.very_distant_pairs()
        self.assertTrue(len(vd_pairs) > 0)
        for pair in vd_pairs:
            self.assertTrue(pair.dipole_pair_energy < 0)
            self.assertIsNone(pair.t_ij)
        self.assertAlmostEqual(mlmp2.energies[1],
                               sum(pair.dipole_pair_energy for pair in vd_pairs), 12)
        self.assertTrue(mlmp2.e_corr < 0)

    def test_dipole_decay(self):
        rng = np.random.RandomState(3)
        mu_i = rng.random_sample((4,3))
        mu_j = rng.random_sample((4,3))
        denom = 1. + rng.random_sample((4,4))
        denom = denom + denom.T
        r = np.array([3., 4., 12.])
        e1 = dipole_pair_energy(mu_i, mu_j, r, denom)
        e2 = dipole_pair_energy(mu_i, mu_j, 2*r, denom)
        self.assertTrue(e1 < 0)
        self.assertAlmostEqual(e2/e1, 1./64, 12)

    def test_coinciding_centroids(self):
        mu = np.ones((4,3))
        denom = np.ones((4,4))
        self.assertRaises(ConfigurationError, dipole_pair_energy, mu, mu, np.zeros(3), denom)


if __name__ == "__main__":
    print("Full Tests for LMP2")
    unittest.main()
