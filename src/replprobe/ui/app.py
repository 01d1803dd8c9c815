from __future__ import annotations

import asyncio

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st

from replprobe.analysis import compare_runs, failure_streaks, latency_spikes
from replprobe.config import EndpointConfig, OutputConfig, ProbeConfig, SecretLocation
from replprobe.errors import ConfigError, PreflightError, StorageError
from replprobe.metrics import Trial, TrialOutcome
from replprobe.probe import run_ping, save_result
from replprobe.storage import default_storage


st.set_page_config(page_title="Replication Probe", layout="wide")

storage = default_storage()


@st.cache_data
def _load_runs() -> pd.DataFrame:
    return storage.list_runs()


def _render_header() -> None:
    st.title("Replication Probe")
    st.caption("Write on the primary, watch it land on the secondary.")


def _build_config() -> ProbeConfig | None:
    with st.sidebar:
        st.header("Run Configuration")
        primary_addr = st.text_input("Primary address", "https://vault-primary:8200")
        primary_token = st.text_input("Primary token", type="password")
        secondary_addr = st.text_input("Secondary address", "https://vault-secondary:8200")
        secondary_token = st.text_input("Secondary token", type="password")
        namespace = st.text_input("Namespace", "admin")
        mount = st.text_input("KV mount", "kv")
        path = st.text_input("Secret path", "pingpong")
        iterations = st.slider("Iterations", 1, 500, 10)
        sleep_sec = st.number_input("Sleep between trials (sec)", min_value=0.0, value=1.0)
        max_wait = st.number_input("Max wait (ms)", min_value=1, value=5000)
        poll = st.number_input("Poll interval (ms)", min_value=1, value=50)
        notes = st.text_input("Notes", "")
    try:
        return ProbeConfig(
            primary=EndpointConfig(address=primary_addr.rstrip("/"), token=primary_token),
            secondary=EndpointConfig(address=secondary_addr.rstrip("/"), token=secondary_token),
            location=SecretLocation(namespace=namespace, mount=mount, path=path),
            iterations=int(iterations),
            inter_trial_delay_sec=float(sleep_sec),
            max_wait_ms=float(max_wait),
            poll_interval_ms=float(poll),
            output=OutputConfig(persist=True),
            notes=notes,
        )
    except ConfigError as exc:
        st.sidebar.error(str(exc))
        return None


def _run_button(config: ProbeConfig) -> None:
    if st.sidebar.button("Start run"):
        progress = st.sidebar.progress(0, text="Running...")

        async def on_progress(trial: Trial, total: int) -> None:
            progress.progress(min(1.0, trial.sequence / total))

        try:
            result = asyncio.run(run_ping(config, progress=on_progress))
        except PreflightError as exc:
            st.sidebar.error(str(exc))
            return
        try:
            save_result(storage, config, result)
        except StorageError as exc:
            st.sidebar.error(str(exc))
        st.sidebar.success(
            f"Run {result.run_id}: {result.summary.success_count} matched, "
            f"{result.summary.fail_count} failed"
        )
        for warning in result.warnings:
            st.sidebar.warning(warning)
        st.cache_data.clear()


def _plot_latency(trials: pd.DataFrame) -> go.Figure:
    matched = trials[trials["outcome"] == TrialOutcome.MATCHED.value]
    fig = go.Figure()
    fig.add_trace(
        go.Scatter(
            x=matched["sequence"],
            y=matched["latency_ms"],
            name="Replication latency",
            mode="lines+markers",
        )
    )
    failed = trials[trials["outcome"] != TrialOutcome.MATCHED.value]
    if not failed.empty:
        fig.add_trace(
            go.Scatter(
                x=failed["sequence"],
                y=failed["elapsed_ms"],
                name="Failed (elapsed)",
                mode="markers",
                marker=dict(symbol="x", size=10),
            )
        )
    fig.update_layout(height=300, margin=dict(l=10, r=10, t=30, b=10))
    return fig


def _plot_latency_hist(trials: pd.DataFrame) -> go.Figure:
    matched = trials[trials["outcome"] == TrialOutcome.MATCHED.value]
    if matched.empty:
        return go.Figure()
    fig = px.histogram(matched, x="latency_ms", nbins=30, title="Latency distribution")
    fig.update_layout(height=300, margin=dict(l=10, r=10, t=30, b=10))
    return fig


def _plot_outcomes(trials: pd.DataFrame) -> go.Figure:
    if trials.empty:
        return go.Figure()
    counts = trials.groupby("outcome").size().reset_index(name="count")
    fig = px.bar(counts, x="outcome", y="count", title="Outcomes")
    fig.update_layout(height=300, margin=dict(l=10, r=10, t=30, b=10))
    return fig


def _render_signals(trials: pd.DataFrame) -> None:
    spikes = latency_spikes(trials)
    streaks = failure_streaks(trials)
    if not spikes and not streaks:
        st.info("No derived signals detected")
        return
    for signal in spikes + streaks:
        st.warning(f"{signal.label}: trial {signal.start_trial} → {signal.end_trial}")


def _render_run_view(run_id: str) -> None:
    trials = storage.load_trials(run_id)
    meta = storage.load_run_meta(run_id) or {}
    summary = storage.load_summary(run_id) or {}
    st.subheader(f"Run {run_id}")
    st.caption(str(meta.get("notes", "")))

    lat = summary.get("lat_ms") or {}
    cols = st.columns(5)
    cols[0].metric("Matched", summary.get("success", 0))
    cols[1].metric("Failed", summary.get("fail", 0))
    cols[2].metric("Mean (ms)", f"{lat.get('avg', 0):.0f}")
    cols[3].metric("p50 (ms)", "n/a" if lat.get("p50") is None else f"{lat['p50']:.0f}")
    cols[4].metric("p95 (ms)", "n/a" if lat.get("p95") is None else f"{lat['p95']:.0f}")

    st.plotly_chart(_plot_latency(trials), use_container_width=True)
    col1, col2 = st.columns(2)
    with col1:
        st.plotly_chart(_plot_latency_hist(trials), use_container_width=True)
    with col2:
        st.plotly_chart(_plot_outcomes(trials), use_container_width=True)
    _render_signals(trials)


def _render_comparison() -> None:
    runs = _load_runs()
    if runs.empty:
        return
    run_ids = runs["run_id"].tolist()
    st.subheader("Run Comparison")
    base = st.selectbox("Baseline run", run_ids, index=0)
    candidate = st.selectbox("Candidate run", run_ids, index=min(1, len(run_ids) - 1))
    if base == candidate:
        st.info("Select two different runs for comparison")
        return
    base_df = storage.load_trials(base)
    cand_df = storage.load_trials(candidate)

    fig = go.Figure()
    fig.add_trace(go.Scatter(x=base_df["sequence"], y=base_df["latency_ms"], name=f"{base} latency"))
    fig.add_trace(go.Scatter(x=cand_df["sequence"], y=cand_df["latency_ms"], name=f"{candidate} latency"))
    fig.update_layout(height=300, margin=dict(l=10, r=10, t=30, b=10))
    st.plotly_chart(fig, use_container_width=True)

    regressions = compare_runs(base_df, cand_df)
    if not regressions:
        st.success("No regressions detected")
    else:
        for reg in regressions:
            st.error(f"{reg.message} ({reg.delta_pct:.1f}% on {reg.metric})")


def main() -> None:
    _render_header()
    config = _build_config()
    if config is not None:
        _run_button(config)

    runs = _load_runs()
    if runs.empty:
        st.info("No runs yet. Start one from the sidebar.")
        return
    selected_run = st.selectbox("Select run", runs["run_id"].tolist())
    _render_run_view(selected_run)
    _render_comparison()


if __name__ == "__main__":
    main()
