import attr
import sys

geo_anomaly_policies = ("warn", "raise", "ignore")


@attr.s(auto_attribs=True, frozen=True)
class CodecConfig:
    """ Settings shared by the decoders and encoders

    correct_geo_halves  - swap the 32 bit halves of the geographic doubles.
                            Defaults to True on little endian hosts only.
    geo_anomaly         - what to do with an out of range coordinate:
                            'warn' logs it, 'raise' raises EncodingAnomaly,
                            'ignore' does nothing.
    """
    correct_geo_halves: bool = sys.byteorder == 'little'
    geo_anomaly: str = attr.ib(default="warn",
                               validator=attr.validators.in_(geo_anomaly_policies))


default_config = CodecConfig()
