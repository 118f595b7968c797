"""EM/track hit tagging, point-classifier and waveform ROI base classes, and .npy record writing."""

__version__ = "0.1.0"
__all__ = ["npywriter", "waveform", "pointid", "emtrack"]