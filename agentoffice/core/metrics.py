from __future__ import annotations

from prometheus_client import Counter, Histogram

AGENT_TRANSITIONS_TOTAL = Counter(
    "agentoffice_agent_transitions_total",
    "Agent state transition attempts grouped by outcome",
    labelnames=("from_state", "action", "outcome"),
)

AGENT_METRICS_RECOMPUTED_TOTAL = Counter(
    "agentoffice_agent_metrics_recomputed_total",
    "Count of agent behaviour metric recomputations",
)

DECISIONS_TOTAL = Counter(
    "agentoffice_decisions_total",
    "Decision cycles grouped by decision type and selected option",
    labelnames=("decision_type", "selected_option"),
)

DECISION_EXECUTION_FAILURES_TOTAL = Counter(
    "agentoffice_decision_execution_failures_total",
    "Decision side-effect transitions that failed",
    labelnames=("stage",),
)

COLLABORATION_STATUS_TOTAL = Counter(
    "agentoffice_collaboration_status_changes_total",
    "Collaboration session status changes",
    labelnames=("status",),
)

COLLABORATION_RESPONSES_TOTAL = Counter(
    "agentoffice_collaboration_responses_total",
    "Collaboration responses grouped by vote",
    labelnames=("vote",),
)

VOTES_CAST_TOTAL = Counter(
    "agentoffice_votes_cast_total",
    "Ballot votes grouped by outcome",
    labelnames=("outcome",),
)

VOTING_CLOSED_TOTAL = Counter(
    "agentoffice_voting_closed_total",
    "Voting sessions closed grouped by trigger",
    labelnames=("trigger",),
)

VOTING_CONSENSUS = Histogram(
    "agentoffice_voting_consensus",
    "Consensus level distribution of closed voting sessions",
    buckets=(0.0, 0.2, 0.4, 0.6, 0.8, 1.0),
)

VOTING_SWEEP_DURATION_SECONDS = Histogram(
    "agentoffice_voting_sweep_duration_seconds",
    "Duration of voting deadline sweeps",
    labelnames=("status",),
)


def record_transition(*, from_state: str, action: str, outcome: str) -> None:
    AGENT_TRANSITIONS_TOTAL.labels(from_state=from_state, action=action, outcome=outcome).inc()


def record_metrics_recomputed() -> None:
    AGENT_METRICS_RECOMPUTED_TOTAL.inc()


def record_decision(*, decision_type: str, selected_option: str | None) -> None:
    DECISIONS_TOTAL.labels(decision_type=decision_type, selected_option=selected_option or "none").inc()


def record_decision_failure(*, stage: str) -> None:
    DECISION_EXECUTION_FAILURES_TOTAL.labels(stage=stage).inc()


def record_collaboration_status(*, status: str) -> None:
    COLLABORATION_STATUS_TOTAL.labels(status=status).inc()


def record_collaboration_response(*, vote: str) -> None:
    COLLABORATION_RESPONSES_TOTAL.labels(vote=vote).inc()


def record_vote(*, outcome: str) -> None:
    VOTES_CAST_TOTAL.labels(outcome=outcome).inc()


def observe_voting_closed(*, trigger: str, consensus: float) -> None:
    VOTING_CLOSED_TOTAL.labels(trigger=trigger).inc()
    VOTING_CONSENSUS.observe(max(0.0, min(1.0, consensus)))


def observe_sweep_run(*, status: str, duration: float) -> None:
    VOTING_SWEEP_DURATION_SECONDS.labels(status=status).observe(duration)
