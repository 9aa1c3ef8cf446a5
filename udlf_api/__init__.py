"""HTTP façade around the UDLF (Unsupervised Distance Learning Framework) binary."""

__version__ = "0.1.0"
