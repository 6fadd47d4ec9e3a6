import numpy as np
import streamlit as st
from plotly import graph_objects as go

from somsd.analysis import ClassMap, HitMap
from somsd.data import LabelRegistry


def _square_layout(fig, title=None):
    fig.update_layout(
        title=title,
        height=800,
        yaxis=dict(scaleanchor="x", scaleratio=1),
    )
    return fig


def hit_map_figure(hits: HitMap, title="Hits per neuron"):
    fig = go.Figure()
    fig.add_trace(
        go.Heatmap(
            z=hits.activation,
            colorscale="Viridis",
            colorbar=dict(title="Hits"),
        )
    )
    return _square_layout(fig, title)


def class_map_figure(classes: ClassMap, labels: LabelRegistry, title="Winner class"):
    winner = classes.winner_class.astype(float)
    winner[winner == 0] = np.nan
    names = [[labels.get(int(v)) or "" for v in row] for row in classes.winner_class]
    fig = go.Figure()
    fig.add_trace(
        go.Heatmap(
            z=winner,
            text=names,
            hovertemplate="x=%{x} y=%{y}<br>%{text}<extra></extra>",
            colorscale="Viridis",
            showscale=False,
        )
    )
    return _square_layout(fig, title)


def u_matrix_figure(umatrix, title="U-matrix"):
    fig = go.Figure()
    fig.add_trace(
        go.Heatmap(
            z=umatrix,
            colorscale="Viridis",
            colorbar=dict(title="Distance"),
        )
    )
    return _square_layout(fig, title)


def error_curve_figure(errors, title="Quantization error"):
    fig = go.Figure()
    fig.add_trace(go.Scatter(x=np.arange(1, len(errors) + 1), y=errors, mode="lines+markers"))
    fig.update_layout(
        title=title,
        xaxis=dict(title="Iteration"),
        yaxis=dict(title="Mean quantization error", type="log"),
    )
    return fig


def explore_hits(hits: HitMap, percentile_delta: float = 0.0):
    plot_data = hits.activation.astype(float)
    col1, col2 = st.columns(2)
    if col1.toggle("Clip outliers", value=False):
        percentile_delta = col2.number_input(
            "Percentile delta",
            min_value=0.0,
            max_value=0.5,
            value=0.01,
            step=0.001,
        )
        plot_data = np.clip(
            plot_data,
            np.quantile(plot_data, percentile_delta),
            np.quantile(plot_data, 1 - percentile_delta),
        )
    st.plotly_chart(hit_map_figure(HitMap(plot_data, hits.roots)))
