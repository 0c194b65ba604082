# -- Export Package -- #

'''
Data export utilities for PBF simulation results.

Exports completed frames as JSON for external renderers.
'''

from FluidSim.export.frameExporter import FrameExporter
