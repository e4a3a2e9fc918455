"""Tree/ectomycorrhizal fungus range overlap and latitudinal shift analysis."""

__version__ = "0.1.0"
