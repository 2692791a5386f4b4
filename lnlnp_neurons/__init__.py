"""
LN-LNP synthetic sensory neurons.

Subunit filters → rectification → signed pooling → rate mapping → Poisson
spiking → spike density, repeated over a population of neuron types and
packaged as a blinded ensemble for dimensionality reduction.
"""

__version__ = "0.1.0"
