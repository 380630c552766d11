"""Streamlit operator console for the interview coordination engine."""

import os

import streamlit as st

from models.errors import SchedulingError
from services.ats_client import ATSClient
from services.coordination_engine import CoordinationEngine
from services.directory_mock import DirectoryMock
from services.messaging_client import MessagingClient
from services.messaging_service_mock import MessagingServiceMock
from services.report_formatter import ReportFormatter
from services.settings import configure_logging, load_settings

# ============================================================================
# CONFIGURATION
# ============================================================================

st.set_page_config(
    page_title="Interview Coordination",
    page_icon="🗓️",
    layout="wide"
)

# ============================================================================
# SERVICE INITIALIZATION
# ============================================================================

@st.cache_resource
def get_engine():
    """Build and cache one engine; collaborators come from INTERVIEW_* settings."""
    try:
        settings = load_settings()
    except SchedulingError as e:
        st.error(f"⚠️ Invalid configuration: {e}")
        st.stop()
    configure_logging()

    if os.getenv("INTERVIEW_MESSAGING_MODE", "mock") == "http":
        messaging = MessagingClient(settings.messaging_base_url, settings.http_timeout_seconds, settings.api_token)
    else:
        messaging = MessagingServiceMock()

    mock_directory = DirectoryMock()
    if os.getenv("INTERVIEW_DIRECTORY_MODE", "mock") == "ats":
        directory = ATSClient(settings.ats_base_url, settings.http_timeout_seconds, settings.api_token)
    else:
        directory = mock_directory

    engine = CoordinationEngine(settings, messaging=messaging)
    try:
        engine.load_directory(directory.fetch_directory())
    except SchedulingError as e:
        st.markdown(ReportFormatter.format_error(
            "Directory unavailable",
            str(e),
            ["Check INTERVIEW_ATS_BASE_URL and INTERVIEW_API_TOKEN", "Set INTERVIEW_DIRECTORY_MODE=mock to use sample data"],
        ))
        return engine
    if directory is mock_directory:
        for request in mock_directory.sample_requests():
            engine.submit_request(request)
    return engine


engine = get_engine()

# ============================================================================
# SIDEBAR
# ============================================================================

with st.sidebar:
    st.markdown("### ⚙️ Engine")
    st.markdown(f"**Strategy:** {engine.settings.conflict_strategy.value}")
    st.markdown(f"**Auto-swap:** {'on' if engine.settings.auto_swap_enabled else 'off'}")
    st.markdown(f"**Queued requests:** {len(engine.queue)}")
    st.markdown(f"**Operator items:** {len(engine.operator_queue)}")
    st.markdown("---")

    if st.button("▶️ Run scheduling pass", use_container_width=True):
        report = engine.run_scheduling_pass()
        st.session_state.last_pass = ReportFormatter.format_success(
            "Scheduling pass finished",
            f"{len(report.assigned)} assigned in {report.passes} round(s).",
            [
                f"{len(report.resolutions)} conflict(s) resolved",
                f"{len(report.requeued)} request(s) re-queued",
                f"{len(report.operator_items)} operator item(s)",
            ],
        )
        st.rerun()

    if st.button("⏱️ Check SLAs and join windows", use_container_width=True):
        events = engine.tick()
        st.session_state.last_pass = ReportFormatter.format_info(
            "Timers evaluated", f"{len(events)} escalation(s) raised."
        )
        st.rerun()

    if engine.undelivered and st.button("📤 Redeliver failed intents", use_container_width=True):
        delivered = engine.redeliver()
        st.session_state.last_pass = ReportFormatter.format_info(
            "Redelivery", f"{delivered} intent(s) delivered, {len(engine.undelivered)} still failing."
        )
        st.rerun()

# ============================================================================
# MAIN PAGE
# ============================================================================

st.title("🗓️ Interview Coordination")

if st.session_state.get("last_pass"):
    st.markdown(st.session_state.last_pass)
    st.markdown("---")

queue_tab, load_tab, interviews_tab, operator_tab, swaps_tab = st.tabs(
    ["Queue", "Interviewer load", "Interviews", "Operator queue", "Swap approvals"]
)

with queue_tab:
    st.markdown(ReportFormatter.format_queue(engine.ranked_queue()))

with load_tab:
    st.markdown(ReportFormatter.format_load(engine.load_tracker.all_capacities()))

with interviews_tab:
    st.markdown(ReportFormatter.format_interviews(engine.lifecycle.active()))
    archived = engine.lifecycle.archived()
    if archived:
        with st.expander(f"Archived ({len(archived)})", expanded=False):
            st.markdown(ReportFormatter.format_interviews(archived))

with operator_tab:
    st.markdown(ReportFormatter.format_operator_items(engine.operator_queue.items()))

with swaps_tab:
    proposals = engine.pending_swaps()
    if not proposals:
        st.markdown(ReportFormatter.format_info("No Pending Swaps", "Backups waiting for approval show up here."))
    for proposal in proposals:
        with st.container():
            st.markdown(ReportFormatter.format_swap_proposal(proposal))
            approve_col, reject_col = st.columns(2)
            with approve_col:
                if st.button("✅ Approve", key=f"approve_{proposal.proposal_id}"):
                    engine.approve_swap(proposal.proposal_id, approved_by="operator")
                    st.rerun()
            with reject_col:
                if st.button("❌ Reject", key=f"reject_{proposal.proposal_id}"):
                    engine.reject_swap(proposal.proposal_id, rejected_by="operator")
                    st.rerun()
            st.markdown("---")
