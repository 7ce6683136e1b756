import numpy as np
from pyscf import gto, scf, mp, lo
from pyscf.lmp2 import LMP2

atom = '''
O   0.000000 0.000000  0.000000
H   0.758602 0.000000  0.504284
H   0.260455 0.000000 -0.872893
O   3.000000 0.500000  0.000000
H   3.758602 0.500000  0.504284
H   3.260455 0.500000 -0.872893
   	'''
basis = 'cc-pvdz'
mol = gto.M(atom=atom, basis=basis, spin=0, verbose=4, max_memory=8000)
mf = scf.RHF(mol).density_fit().run()
frozen = 2

# PM localization
orbocc = mf.mo_coeff[:, frozen:np.count_nonzero(mf.mo_occ)]
mlo = lo.PipekMezey(mol, orbocc)
lo_coeff = mlo.kernel()
for i in range(100): # always performing jacobi sweep to avoid trapping in local minimum/saddle point
    stable, lo_coeff1 = mlo.stability_jacobi()
    if stable:
        break
    mlo = lo.PipekMezey(mf.mol, lo_coeff1).set(verbose=4)
    mlo.init_guess = None
    lo_coeff = mlo.kernel()

mlmp2 = LMP2(mf, lo_coeff, frozen=frozen)
mlmp2.pno_thresh = 1e-8
mlmp2.kernel()

eref = mp.dfmp2.DFMP2(mf, frozen=frozen).run().e_corr
err = mlmp2.e_corr - eref

print()
print(('E_corr= % .10f (err= % .10f)  '%(mlmp2.e_corr, err)))
print(('E_corr(SCS)= % .10f'%(mlmp2.e_corr_scs)))
print()
