from buildpipe.quality.gate import QualityGate, pass_rate

__all__ = ["QualityGate", "pass_rate"]
