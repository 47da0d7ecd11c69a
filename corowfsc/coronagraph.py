"""
Focal-plane stages of the supported coronagraph types.

Each coronagraph type is a subclass of `FocalPlaneStage` that turns the
field at the apodizer plane P3 into the field arriving at the Lyot plane P4,
before the Lyot stop. The model picks the stage for `mp.coro` with
`get_variant`.
"""
import numpy as np
from scipy.interpolate import interp1d

from . import prop
from .check import ConfigurationError
from .util import pad_crop

_VARIANTS = {}


def _register(cls):
    for tag in cls.tags:
        _VARIANTS[tag.upper()] = cls
    return cls


def get_variant(tag):
    """
    Return the focal-plane stage for a coronagraph type tag.

    Parameters
    ----------
    tag : str
        Coronagraph type, e.g. 'LC', 'HLC', 'VC'. Case insensitive.

    Returns
    -------
    FocalPlaneStage
        Stage instance for that type.
    """
    try:
        return _VARIANTS[str(tag).upper()]()
    except KeyError:
        raise ConfigurationError(
            'Unknown coronagraph type "%s". Options: %s'
            % (tag, ', '.join(known_tags()))) from None


def known_tags():
    return sorted(_VARIANTS)


class FocalPlaneStage(object):
    """
    Propagation from pupil P3 through the focal plane F3 to pupil P4.

    `model` selects the 'compact' or 'full' plane records of `mp`. When
    `normFac` is zero the unocculted counterpart is used, which gives the
    reference field for the PSF normalization.
    """

    tags = ()

    def apply_focal_plane_stage(self, EP3, wvl, normFac, mp, model='compact'):
        if normFac == 0:
            return self.unocculted(EP3, wvl, mp, model)
        return self.occulted(EP3, wvl, mp, model)

    def occulted(self, EP3, wvl, mp, model):
        raise NotImplementedError

    def unocculted(self, EP3, wvl, mp, model):
        EP4 = prop.relay(EP3, _nrelay(mp, mp.Nrelay3to4), mp.centering)
        return pad_crop(EP4, mp.P4[model].Narr)

    def trans_outer(self, mp, model):
        """Complex transmission of the FPM substrate outside the mask."""
        return 1.


def _nrelay(mp, Nrelay):
    # No image rotations are modeled unless flagRotation is set.
    return int(Nrelay) if mp.flagRotation else 0


def _to_f3(EP3, wvl, mp, model):
    F3 = mp.F3[model]
    return prop.mft_p2f(EP3, mp.fl, wvl, mp.P2[model].dx, F3.dxi, F3.Nxi,
                        F3.deta, F3.Neta, mp.centering)


def _f3_to_p4(EF3, wvl, mp, model):
    F3 = mp.F3[model]
    P4 = mp.P4[model]
    EP4 = prop.mft_f2p(EF3, mp.fl, wvl, F3.dxi, F3.deta, P4.dx, P4.Narr,
                       mp.centering)
    # There is one relay inherent to the pair of MFTs
    return prop.relay(EP4, _nrelay(mp, mp.Nrelay3to4 - 1), mp.centering)


@_register
class Vortex(FocalPlaneStage):
    """
    Vortex phase mask, propagated with the two-resolution MFT.

    `mp.F3.VortexCharge` is either a scalar (achromatic) or an array matched
    to `mp.F3.VortexCharge_lambdas` (chromatic, linearly interpolated and
    extrapolated).
    """

    tags = ('VORTEX', 'VC', 'AVC')

    @staticmethod
    def charge(mp, wvl):
        charge = np.asarray(mp.F3.VortexCharge, dtype=float)
        if charge.size == 1:
            return float(charge.ravel()[0])
        lambdas = np.asarray(mp.F3.VortexCharge_lambdas, dtype=float)
        return float(interp1d(lambdas, charge, kind='linear',
                              fill_value='extrapolate')(wvl))

    def occulted(self, EP3, wvl, mp, model):
        EP4 = prop.mft_p2v2p(EP3, self.charge(mp, wvl),
                             mp.P1[model].Nbeam/2., 0.3, 5)
        # There is one relay inherent to mft_p2v2p
        EP4 = prop.relay(EP4, _nrelay(mp, mp.Nrelay3to4 - 1), mp.centering)
        return pad_crop(EP4, mp.P4[model].Narr)


@_register
class ShapedPupilLyot(FocalPlaneStage):
    """Direct multiplicative masking by an amplitude FPM."""

    tags = ('SPLC', 'FLC')

    def occulted(self, EP3, wvl, mp, model):
        EF3 = mp.F3[model].mask * _to_f3(EP3, wvl, mp, model)
        return _f3_to_p4(EF3, wvl, mp, model)

    def unocculted(self, EP3, wvl, mp, model):
        # The field stop also limits the unocculted beam.
        return _f3_to_p4(_to_f3(EP3, wvl, mp, model), wvl, mp, model)


@_register
class Lyot(FocalPlaneStage):
    """
    Occulting spot, modeled with Babinet's principle.

    The field through the mask is the unmasked beam minus the beam through
    the mask complement. Only the small complement region needs to be
    sampled in the focal plane.
    """

    tags = ('LC', 'APLC')

    def occulted(self, EP3, wvl, mp, model):
        transOuter = self.trans_outer(mp, model)
        EF3 = (transOuter - mp.F3[model].mask) * _to_f3(EP3, wvl, mp, model)

        EP4noFPM = transOuter * super().unocculted(EP3, wvl, mp, model)
        EP4sub = _f3_to_p4(EF3, wvl, mp, model)

        return EP4noFPM - EP4sub

    def apply_direct(self, EP3, wvl, mp, model='compact'):
        """
        Propagate through the mask by direct multiplication in the focal plane.

        The focal plane is sampled over the whole period of the pupil-plane
        DFT, with the mask padded by its outer transmission. Agrees with
        `occulted` when `P1.Nbeam * F3.res * wvl/lambda0` is an integer.
        """
        F3 = mp.F3[model]
        Nfull = int(round(mp.P1[model].Nbeam * F3.res * wvl/mp.lambda0))
        transOuter = self.trans_outer(mp, model)

        EF3inc = prop.mft_p2f(EP3, mp.fl, wvl, mp.P2[model].dx, F3.dxi, Nfull,
                              F3.deta, Nfull, mp.centering)
        maskFull = np.asarray(pad_crop(F3.mask, Nfull), dtype=complex)
        inside = pad_crop(np.ones(F3.mask.shape), Nfull).astype(bool)
        maskFull[~inside] = transOuter

        return _f3_to_p4(maskFull*EF3inc, wvl, mp, model)


@_register
class Roddier(Lyot):
    """Babinet propagation through a complex phase-dimple FPM."""

    tags = ('RODDIER',)


@_register
class HybridLyot(Lyot):
    """
    Babinet propagation through a complex metal/dielectric FPM.

    The substrate outside the spot has complex transmission `mask[0, 0]`.
    """

    tags = ('HLC',)

    def trans_outer(self, mp, model):
        return mp.F3[model].mask[0, 0]

    def unocculted(self, EP3, wvl, mp, model):
        return (self.trans_outer(mp, model) *
                super().unocculted(EP3, wvl, mp, model))


@_register
class ExtendedHybridLyot(ShapedPupilLyot):
    """Direct masking by a complex FPM sampled over the full field of view."""

    tags = ('EHLC',)

    def trans_outer(self, mp, model):
        return mp.F3[model].mask[0, 0]

    def unocculted(self, EP3, wvl, mp, model):
        return (self.trans_outer(mp, model) *
                FocalPlaneStage.unocculted(self, EP3, wvl, mp, model))


@_register
class NoFPM(FocalPlaneStage):
    """Idealized coronagraph with no focal-plane mask."""

    tags = ('NONE', 'NOFPM')

    def occulted(self, EP3, wvl, mp, model):
        return self.unocculted(EP3, wvl, mp, model)
