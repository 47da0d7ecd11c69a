"""Small Lyot coronagraph configuration for the functional tests."""
import os
import tempfile

import numpy as np
from astropy.io import fits

import corowfsc


def write_influence_function(fn, pitch=1e-3, dx=1e-4, N=41, sigma=0.45):
    """
    Write a Gaussian DM influence function to a FITS file.

    Parameters
    ----------
    fn : str
        Output file name
    pitch : float
        Actuator pitch [meters] stored as C2CDX_M
    dx : float
        Pixel width [meters] stored as P2PDX_M
    N : int
        Number of points across the influence function
    sigma : float
        Gaussian width [actuator pitches]
    """
    x = (np.arange(N) - N//2)*dx/pitch
    X, Y = np.meshgrid(x, x)
    hdu = fits.PrimaryHDU(np.exp(-(X**2 + Y**2)/(2*sigma**2)))
    hdu.header['P2PDX_M'] = dx
    hdu.header['C2CDX_M'] = pitch
    hdu.writeto(fn, overwrite=True)


def aberrated_field(Nbeam, Narr, amp=0.03):
    """Pupil field with two sinusoidal phase ripples [radians]."""
    xs = (np.arange(Narr) - Narr//2)/Nbeam  # pupil diameters, pixel centered
    XS, YS = np.meshgrid(xs, xs)
    phase = amp*np.cos(2*np.pi*(4.3*XS + 0.5*YS)) + \
        amp*np.cos(2*np.pi*(3.5*XS - 1.0*YS) + 0.7)
    return np.exp(1j*phase)


INF_FN = os.path.join(tempfile.mkdtemp(prefix='corowfsc_'),
                      'influence_gaussian.fits')
write_influence_function(INF_FN)

mp = corowfsc.config.ModelParameters()
mp.runLabel = 'testing_lc_small'
mp.flagParallel = False
mp.flagSaveWS = False
mp.flagSaveEachItr = False

mp.centering = 'pixel'
mp.layout = 'Fourier'
mp.coro = 'LC'

# Bandpass
mp.lambda0 = 550e-9
mp.fracBW = 0.01
mp.Nsbp = 1
mp.Nwpsbp = 1

# Estimation and control
mp.estimator = 'perfect'
mp.est.probe = corowfsc.config.Probe(Npairs=3, radius=6, whichDM=1)
mp.controller = 'gridsearchEFC'
mp.Nitr = 3
mp.dm_ind = [1, 2]
mp.ctrl.flagUseModel = False
mp.ctrl.regMode = 'relative'
mp.ctrl.log10regVec = np.arange(-5, -1.5, 1)
mp.ctrl.dmfacVec = np.array([1.])
mp.jac.dVpoke = 0.1  # [volts]

# Throughput
mp.thput_metric = 'HMI'
mp.thput_eval_x = 4
mp.thput_eval_y = 0

# Final focal plane and dark hole
mp.Fend.res = 3
mp.Fend.FOV = 7
mp.Fend.sides = 'right'
mp.Fend.shape = 'circle'
mp.Fend.corr.Rin = 3
mp.Fend.corr.Rout = 5
mp.Fend.corr.ang = 180
mp.Fend.score.Rin = 3
mp.Fend.score.Rout = 5
mp.Fend.score.ang = 180

# Optical layout
mp.fl = 1.
mp.P2.D = 11e-3
mp.P3.D = 11e-3
mp.P4.D = 11e-3
mp.d_P2_dm1 = 0.
mp.d_dm1_dm2 = 0.05

mp.P1.IDnorm = 0.
mp.P1.compact.Nbeam = 32
mp.P1.full.Nbeam = 32
mp.P4.ODnorm = 0.85
mp.P4.IDnorm = 0.
mp.P4.compact.Nbeam = 32
mp.P4.full.Nbeam = 32

# Occulting spot
mp.F3.Rin = 2.8
mp.F3.Rout = np.inf
mp.F3.compact.res = 4
mp.F3.full.res = 4
mp.FPMampFac = 0.

# Deformable mirrors
for dmX in (mp.dm1, mp.dm2):
    dmX.Nact = 12
    dmX.dm_spacing = 1e-3  # [meters]
    dmX.inf_fn = INF_FN
    dmX.inf_sign = '+'
    dmX.VtoH = 1e-9*np.ones((12, 12))  # [meters/volt]

# Entrance pupil and the unknown aberrations of the full model
Narr = corowfsc.util.ceil_even(mp.P1.full.Nbeam + 2)
mp.P1.compact.mask = corowfsc.mask.gen_pupil_simple(
    {'Nbeam': mp.P1.compact.Nbeam, 'Npad': Narr, 'OD': 1.})
mp.P1.full.mask = corowfsc.mask.gen_pupil_simple(
    {'Nbeam': mp.P1.full.Nbeam, 'Npad': Narr, 'OD': 1.})
mp.P1.full.E = aberrated_field(mp.P1.full.Nbeam, Narr).reshape(
    (Narr, Narr, 1, 1))
