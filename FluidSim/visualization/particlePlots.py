# -- Particle Visualizations -- #

'''
Plotly-based interactive plots of completed simulation frames.

All plots consume FrameSnapshots, never the live particle buffers.
'''

from __future__ import annotations

import numpy as np
import plotly.graph_objects as go
from plotly.subplots import make_subplots

from FluidSim.pbf.protocols import FrameSnapshot, SimulationConfig
from FluidSim.pbf.diagnostics import NeighborStats

# Dark Plotly styling shared by every figure
TEMPLATE = 'plotly_dark'
SPEED_COLOR = '#42A5F5'
MAX_NEIGHBOR_COLOR = '#EF5350'
MEAN_NEIGHBOR_COLOR = '#66BB6A'
BOX_COLOR = '#888888'
MARKER_SIZE = 2


def _rgbStrings(colors: np.ndarray) -> list[str]:
    '''Convert (N, 3) colors in [0, 1] to Plotly rgb() strings.'''
    rgb = np.clip(np.round(colors * 255), 0, 255).astype(int)
    return [f'rgb({r},{g},{b})' for r, g, b in rgb]


def _boxEdges(boundsMin: np.ndarray, boundsMax: np.ndarray) -> tuple[list, list, list]:
    '''Line segments of the collision box, separated by None.'''
    lo, hi = boundsMin, boundsMax
    corners = np.array([
        [lo[0], lo[1], lo[2]], [hi[0], lo[1], lo[2]],
        [hi[0], hi[1], lo[2]], [lo[0], hi[1], lo[2]],
        [lo[0], lo[1], hi[2]], [hi[0], lo[1], hi[2]],
        [hi[0], hi[1], hi[2]], [lo[0], hi[1], hi[2]],
    ])
    edges = [
        (0, 1), (1, 2), (2, 3), (3, 0),
        (4, 5), (5, 6), (6, 7), (7, 4),
        (0, 4), (1, 5), (2, 6), (3, 7),
    ]

    xs, ys, zs = [], [], []
    for a, b in edges:
        xs += [corners[a, 0], corners[b, 0], None]
        ys += [corners[a, 1], corners[b, 1], None]
        zs += [corners[a, 2], corners[b, 2], None]
    return xs, ys, zs


def plotParticles(
    snapshot: FrameSnapshot,
    config: SimulationConfig | None = None,
    maxPoints: int | None = 20000,
) -> go.Figure:
    '''
    3D scatter of particle positions colored by their frame colors.

    Parameters:
    -----------
    snapshot : FrameSnapshot
        Completed frame
    config : SimulationConfig | None
        When given, the collision box is drawn
    maxPoints : int | None
        Subsample to at most this many particles (None for all)

    Returns:
    --------
    go.Figure : Plotly figure
    '''
    positions = snapshot.positions
    colors = snapshot.colors
    if maxPoints is not None and snapshot.nParticles > maxPoints:
        stride = int(np.ceil(snapshot.nParticles / maxPoints))
        positions = positions[::stride]
        colors = colors[::stride]

    fig = go.Figure()

    fig.add_trace(go.Scatter3d(
        x=positions[:, 0], y=positions[:, 2], z=positions[:, 1],
        mode='markers',
        marker=dict(size=MARKER_SIZE, color=_rgbStrings(colors)),
        name='Particles',
        showlegend=False,
    ))

    if config is not None:
        xs, ys, zs = _boxEdges(config.boundsMin, config.boundsMax)
        # y is up in the simulation, z is up in Plotly scenes
        fig.add_trace(go.Scatter3d(
            x=xs, y=zs, z=ys, mode='lines',
            line=dict(color=BOX_COLOR, width=2),
            name='Domain',
            showlegend=False,
        ))

    fig.update_layout(
        title=f'Frame {snapshot.frame}  (t = {snapshot.simulationTime:.4f} s)',
        scene=dict(
            xaxis_title='x',
            yaxis_title='z',
            zaxis_title='y',
            aspectmode='data',
        ),
        template=TEMPLATE,
        height=600,
    )

    return fig


def plotFrameHistory(
    snapshots: list[FrameSnapshot],
    neighborHistory: list[NeighborStats] | None = None,
) -> go.Figure:
    '''
    Time histories of max speed and (optionally) neighbor counts.

    Parameters:
    -----------
    snapshots : list[FrameSnapshot]
        Completed frames in order
    neighborHistory : list[NeighborStats] | None
        Neighbor statistics recorded after each frame

    Returns:
    --------
    go.Figure : Plotly figure
    '''
    times = [s.simulationTime for s in snapshots]
    maxSpeeds = [s.maxSpeed() for s in snapshots]

    nRows = 2 if neighborHistory else 1
    titles = ['Max Speed'] + (['Neighbor Count'] if neighborHistory else [])
    fig = make_subplots(rows=nRows, cols=1, shared_xaxes=True, subplot_titles=titles)

    fig.add_trace(go.Scatter(
        x=times, y=maxSpeeds, mode='lines',
        name='Max speed', line=dict(color=SPEED_COLOR, width=2),
    ), row=1, col=1)

    if neighborHistory:
        fig.add_trace(go.Scatter(
            x=times, y=[n.maxCount for n in neighborHistory], mode='lines',
            name='Max neighbors', line=dict(color=MAX_NEIGHBOR_COLOR, width=2),
        ), row=2, col=1)
        fig.add_trace(go.Scatter(
            x=times, y=[n.meanCount for n in neighborHistory], mode='lines',
            name='Mean neighbors', line=dict(color=MEAN_NEIGHBOR_COLOR, width=2),
        ), row=2, col=1)

    fig.update_xaxes(title_text='Simulation Time (s)', row=nRows, col=1)
    fig.update_layout(
        title='Simulation History',
        template=TEMPLATE,
        height=300 * nRows,
    )

    return fig
