import logging
import os
import tempfile

import streamlit as st

from somsd.analysis import (
    clustering_performance,
    confusion_matrix,
    get_node_coordinates,
    hit_map,
    u_matrix,
    winner_classes,
)
from somsd.config import TrainingParameters, suggest_mu
from somsd.data import LabelRegistry, set_weight_values, sort_nodes_by_depth
from somsd.diagnostics import Diagnostics
from somsd.errors import SomsdError
from somsd.fileio.datafile import load_data
from somsd.fileio.mapfile import load_map
from somsd.graph import NodeType
from somsd.plot.hexgrid import draw_map
from somsd.plot.maps import class_map_figure, explore_hits, u_matrix_figure

LOG_FILE = "log.txt"
logging.basicConfig(
    level=logging.INFO,
    filename=LOG_FILE,
    filemode="w",
    format="%(asctime)s - %(levelname)s - %(name)s - %(lineno)d - %(message)s",
)
logger = logging.getLogger(__name__)

NODE_TYPES = {
    "Root": NodeType.ROOT,
    "Intermediate": NodeType.INTERMEDIATE,
    "Leaf": NodeType.LEAF,
}


@st.cache_data
def map_dataset(data_bytes, map_bytes):
    paths = []
    try:
        for file_bytes in (data_bytes, map_bytes):
            with tempfile.NamedTemporaryFile(delete=False) as temp_file:
                temp_file.write(file_bytes)
                paths.append(temp_file.name)
        labels = LabelRegistry()
        graphs = load_data(paths[0], labels)
        map, header = load_map(paths[1])
        params = TrainingParameters.from_map_header(header)
        params = suggest_mu(params, map, graphs, Diagnostics())
        set_weight_values(graphs, *params.mu)
        sort_nodes_by_depth(graphs)
        qerror = get_node_coordinates(map, graphs)
        return map, graphs, labels, qerror
    finally:
        for path in paths:
            os.remove(path)
            logger.info("Temporary file removed: %s", path)


st.set_page_config(layout="wide")
st.title("SOM-SD map explorer")

st.sidebar.header("Analysis")
chosen = st.sidebar.multiselect(
    "Node types",
    options=list(NODE_TYPES),
    default=list(NODE_TYPES),
)
mode = NodeType(0)
for name in chosen:
    mode |= NODE_TYPES[name]

st.header("1. Upload data and map")
col1, col2 = st.columns(2)
data_file = col1.file_uploader("Data file")
map_file = col2.file_uploader("Map file")
if data_file is None or map_file is None:
    st.info("Please upload a data file and a trained map.")
    st.stop()

try:
    map, graphs, labels, qerror = map_dataset(data_file.getvalue(), map_file.getvalue())
except SomsdError as e:
    st.error(f"Could not map the dataset: {e}")
    st.stop()

st.header("2. Results")
with st.expander("Show log"):
    with open(LOG_FILE) as f:
        logs = f.read()
    st.text_area("Log", logs, height=300)

hits = hit_map(map, graphs, mode)
col1, col2, col3 = st.columns(3)
col1.metric("Quantization error", f"{qerror:.6f}")
col2.metric("Neurons activated", hits.activated)
col3.metric("Compression ratio", f"{hits.compression_ratio:.3f}")

st.subheader("Hit map")
explore_hits(hits)

st.subheader("U-matrix")
st.plotly_chart(u_matrix_figure(u_matrix(map)))

if len(labels):
    classes = winner_classes(map, graphs, labels, mode)
    st.subheader("Winner classes")
    st.plotly_chart(class_map_figure(classes, labels))
    st.pyplot(draw_map(map, hits, classes, labels))

    st.subheader("Confusion matrix")
    confusion = confusion_matrix(map, graphs, labels, classes, mode)
    st.dataframe(confusion.table)
    st.write(
        f"On diagonal: {confusion.on_diagonal}, off diagonal: {confusion.off_diagonal}, "
        f"confusion: {confusion.confusion:.2f} %"
    )
    try:
        st.metric("Clustering performance", f"{clustering_performance(map, classes):.4f}")
    except SomsdError as e:
        st.warning(str(e))
else:
    st.warning("The data file carries no symbolic labels, class maps are not available.")
