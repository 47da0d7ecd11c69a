"""Pairwise probe settings."""
from corowfsc.config.Object import Object


class Probe(Object):
    """Define the probe properties."""

    def __init__(self, **kwargs):

        self.Npairs = 3  # Number of pair-wise probe pairs to use.
        self.whichDM = 1  # Which DM to use for probing. 1 or 2.
        self.xOffset = 0  # x-offset of the probe center from the DM grid center [actuators].
        self.yOffset = 0  # y-offset of the probe center from the DM grid center [actuators].
        self.rotation = 0  # rotation angle applied to the probe command [degrees]
        self.gainFudge = 1  # empirical factor so that the mean probe amplitude matches the desired value

        self.radius = 12  # Half-width of the square probed region in the image plane [lambda/D].
        self.axis = 'alternate'  # Axis of the phase discontinuity: 'x', 'y', or 'xy'/'alt'/'alternate'.

        self.InormProbeMax = 1e-4  # Upper bound on the probe intensity [normalized intensity]

        super().__init__(**kwargs)
