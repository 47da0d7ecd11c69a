from corowfsc.config.Object import Object


class ModelVariables(Object):
    """Per-call selection of sub-band, wavelength, star and source."""

    def __init__(self, **kwargs):
        self.sbpIndex = 0
        "list index of subband"

        self.wpsbpIndex = 0
        "list index of wavelength within the subband (full model only)"

        self.starIndex = 0
        "list index of star"

        self.whichSource = 'star'
        "'star' or 'offaxis'"

        self.x_offset = 0
        "lambda_central/D"

        self.y_offset = 0
        "lambda_central/D"

        super().__init__(**kwargs)
