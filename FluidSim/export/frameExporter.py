# -- Simulation Frame Exporter -- #

'''
Exports PBF simulation frames as JSON for external renderers.

Collects FrameSnapshots during a run and writes them to a single JSON
file. Only completed frames are recorded, so every stored frame is a
consistent post-Integrate state.
'''

from __future__ import annotations

import json
import os
from datetime import datetime

import numpy as np

from FluidSim.pbf.protocols import FrameSnapshot, SimulationConfig


class FrameExporter:
    '''
    Collects and exports simulation frame data as JSON.

    Usage:
        exporter = FrameExporter()
        # After each runFrame():
        exporter.addFrame(snapshot)
        # After simulation:
        exporter.export(config, outputDir='output')

    Output JSON format:
    {
        "meta": { "type": "fluidSim", "nFrames": 2, "created": "...", ... },
        "config": { "restDensity": 600.0, ... },
        "frames": [
            {
                "frame": 1,
                "time": 0.0166,
                "positions": [[x0, y0, z0], ...],
                "velocities": [[u0, v0, w0], ...],
                "colors": [[r0, g0, b0], ...]
            },
            ...
        ]
    }

    Parameters:
    -----------
    includeVelocities : bool
        Store full velocity vectors (otherwise only speeds)
    precision : int
        Decimal places kept for floats
    '''

    def __init__(self, includeVelocities: bool = True, precision: int = 5) -> None:
        self._frames: list[dict] = []
        self._includeVelocities = includeVelocities
        self._precision = precision

    @property
    def nFrames(self) -> int:
        '''Number of collected frames.'''
        return len(self._frames)

    @property
    def frames(self) -> list[dict]:
        '''Collected frame records.'''
        return self._frames

    def addFrame(self, snapshot: FrameSnapshot) -> None:
        '''
        Record a completed frame.

        Parameters:
        -----------
        snapshot : FrameSnapshot
            Snapshot returned by SimulationLoop.runFrame()
        '''
        p = self._precision
        frame = {
            'frame': snapshot.frame,
            'time': round(snapshot.simulationTime, 6),
            'positions': np.round(snapshot.positions, p).tolist(),
            'colors': np.round(snapshot.colors, 3).tolist(),
        }
        if self._includeVelocities:
            frame['velocities'] = np.round(snapshot.velocities, p).tolist()
        else:
            speeds = np.linalg.norm(snapshot.velocities, axis=1)
            frame['speeds'] = np.round(speeds, p).tolist()

        self._frames.append(frame)

    def export(
        self,
        config: SimulationConfig,
        outputDir: str = 'FluidSim/output',
        scenarioName: str = 'randomCube',
    ) -> str:
        '''
        Write all collected frames to a JSON file.

        Parameters:
        -----------
        config : SimulationConfig
            Simulation configuration for metadata
        outputDir : str
            Output directory path
        scenarioName : str
            Scenario name for the filename

        Returns:
        --------
        str : Path to the exported JSON file
        '''
        os.makedirs(outputDir, exist_ok=True)

        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        filename = f'fluidSim_{scenarioName}_{timestamp}.json'
        filepath = os.path.join(outputDir, filename)

        output = {
            'meta': {
                'type': 'fluidSim',
                'dimensions': 3,
                'nFrames': len(self._frames),
                'nParticles': config.particleCount,
                'created': datetime.now().isoformat(),
            },
            'config': {
                'boundsMin': config.boundsMin.tolist(),
                'boundsMax': config.boundsMax.tolist(),
                'restDensity': config.restDensity,
                'supportRadius': config.supportRadius,
                'substeps': config.substeps,
                'solverIterations': config.solverIterations,
                'maxDeltaTime': config.maxDeltaTime,
            },
            'frames': self._frames,
        }

        with open(filepath, 'w') as f:
            json.dump(output, f, indent=None, separators=(',', ':'))

        return filepath
