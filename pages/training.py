import logging
import tempfile
from pathlib import Path

import streamlit as st

from somsd.codebook import Neighborhood, Topology
from somsd.config import AlphaType, InitMode, MapSpec, TrainingParameters
from somsd.errors import SomsdError
from somsd.fileio.datafile import load_data
from somsd.initializer import initialize_map
from somsd.plot.maps import error_curve_figure
from somsd.train import train_map

LOG_FILE = "log.txt"
logging.basicConfig(
    level=logging.INFO,
    filename=LOG_FILE,
    filemode="w",
    format="%(asctime)s - %(levelname)s - %(name)s - %(lineno)d - %(message)s",
)


@st.cache_data
def train(data_bytes, spec: dict, params: dict):
    with tempfile.TemporaryDirectory() as tmp:
        data_path = Path(tmp) / "data"
        data_path.write_bytes(data_bytes)
        graphs = load_data(data_path)
        map = initialize_map(graphs, MapSpec(**spec))
        output = Path(tmp) / "trained.net"
        result = train_map(
            map,
            graphs,
            TrainingParameters(
                **params,
                output_file=str(output),
                log_file=str(Path(tmp) / "somsd.log"),
            ),
        )
        return result.errors, output.read_bytes()


st.set_page_config(layout="wide")
st.title("Train a SOM-SD map")

with st.sidebar:
    st.header("Map")
    xdim = st.number_input("Width", min_value=1, max_value=200, value=10)
    ydim = st.number_input("Height", min_value=1, max_value=200, value=10)
    topology = st.selectbox("Topology", options=[t.name for t in Topology], index=1)
    neighborhood = st.selectbox(
        "Neighborhood", options=[n.name for n in Neighborhood], index=1
    )
    init_mode = st.selectbox("Initialization", options=[m.name for m in InitMode])
    st.header("Training")
    iterations = st.number_input("Iterations", min_value=1, max_value=10000, value=64)
    alpha = st.number_input(
        "Learning rate",
        min_value=0.0,
        max_value=2.0,
        value=0.9,
        step=0.05,
    )
    radius = st.number_input(
        "Neighborhood radius (0 = automatic)",
        min_value=0.0,
        max_value=100.0,
        value=0.0,
        step=0.5,
    )
    alpha_type = st.selectbox("Learning rate decay", options=[a.name for a in AlphaType])
    contextual = st.toggle("Contextual (uses parent states)", value=False)
    seed = st.number_input("Seed", min_value=0, value=1)

uploaded_file = st.file_uploader("Data file")
if uploaded_file is None:
    st.info("Please upload a data file.")
    st.stop()

if not st.button("Start training"):
    st.stop()

spec = dict(
    xdim=int(xdim),
    ydim=int(ydim),
    topology=Topology[topology],
    neighborhood=Neighborhood[neighborhood],
    init_mode=InitMode[init_mode],
    seed=int(seed),
)
params = dict(
    iterations=int(iterations),
    alpha=alpha,
    radius=radius,
    alpha_type=AlphaType[alpha_type],
    contextual=contextual,
    seed=int(seed),
)
try:
    with st.spinner("Training..."):
        errors, map_bytes = train(uploaded_file.getvalue(), spec, params)
except SomsdError as e:
    st.error(f"Training failed: {e}")
    st.stop()

st.success(f"Training finished after {len(errors)} iterations.")
st.plotly_chart(error_curve_figure(errors))
st.download_button("Download map", data=map_bytes, file_name="trained.net")

with st.expander("Show log"):
    with open(LOG_FILE) as f:
        logs = f.read()
    st.text_area("Log", logs, height=300)
