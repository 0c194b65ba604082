# -- Visualization Subpackage -- #

'''
Plotly-based interactive visualizations of completed simulation frames.
'''

from FluidSim.visualization.particlePlots import plotParticles, plotFrameHistory
