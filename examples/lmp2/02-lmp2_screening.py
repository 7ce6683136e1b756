'''
Pair screening by orbital centroid distance. Very distant pairs are
estimated with the dipole approximation, distant pairs use a looser PNO
threshold.
'''
from pyscf import gto, scf
from pyscf.lmp2 import LMP2

atom = '''
O   0.000000 0.000000  0.000000
H   0.758602 0.000000  0.504284
H   0.260455 0.000000 -0.872893
O   6.000000 0.500000  0.000000
H   6.758602 0.500000  0.504284
H   6.260455 0.500000 -0.872893
O  12.000000 1.000000  0.000000
H  12.758602 1.000000  0.504284
H  12.260455 1.000000 -0.872893
'''
mol = gto.M(atom=atom, basis='cc-pvdz', verbose=4)
mf = scf.RHF(mol).density_fit().run()

mlmp2 = LMP2(mf, frozen=3)
mlmp2.distant_cutoff = 8.       # Bohr
mlmp2.very_distant_cutoff = 15. # Bohr
mlmp2.distant_pno_scaling = 10.
mlmp2.nthreads = 4
mlmp2.chkfile = 'lmp2_pairs.chk'
mlmp2.kernel()

e_pairs, e_dipole, e_pno = mlmp2.energies
print('E_corr = %.10f  (pairs %.10f, dipole %.10f, PNO correction %.10f)' %
      (mlmp2.e_corr, e_pairs, e_dipole, e_pno))
