"""
Prometheus metrics for Paxos peers.

Every metric is labelled by node_id so that several peers sharing one
process (and one default registry) stay distinguishable.
"""
from prometheus_client import Counter, Histogram, Gauge


# Acceptor side
acceptor_metrics = {
    "prepare_received": Counter(
        "paxos_prepare_received_total",
        "Total number of prepare requests handled",
        ["node_id"]
    ),
    "accept_received": Counter(
        "paxos_accept_received_total",
        "Total number of accept requests handled",
        ["node_id"]
    ),
    "decided_received": Counter(
        "paxos_decided_received_total",
        "Total number of decided requests handled",
        ["node_id"]
    ),
    "replies": Counter(
        "paxos_acceptor_replies_total",
        "Acceptor replies by request type and status",
        ["node_id", "type", "status"]
    ),
}


# Proposer side
proposer_metrics = {
    "proposals_started": Counter(
        "paxos_proposals_started_total",
        "Number of proposer tasks spawned by start()",
        ["node_id"]
    ),
    "rounds": Counter(
        "paxos_proposer_rounds_total",
        "Number of prepare rounds attempted",
        ["node_id"]
    ),
    "decided": Counter(
        "paxos_proposals_decided_total",
        "Number of proposer tasks that drove an instance to decision",
        ["node_id"]
    ),
    "prepare_phase_duration": Histogram(
        "paxos_prepare_phase_duration_seconds",
        "Duration of the prepare phase",
        ["node_id"]
    ),
    "accept_phase_duration": Histogram(
        "paxos_accept_phase_duration_seconds",
        "Duration of the accept phase",
        ["node_id"]
    ),
    "active_proposers": Gauge(
        "paxos_active_proposers",
        "Number of running proposer tasks",
        ["node_id"]
    ),
}


# Transport and fault injection
rpc_metrics = {
    "inbound": Counter(
        "paxos_rpc_inbound_total",
        "Remote requests received by type",
        ["node_id", "type"]
    ),
    "no_reply": Counter(
        "paxos_rpc_no_reply_total",
        "Outbound calls that produced no reply (timeout, error, drop)",
        ["node_id"]
    ),
    "dropped": Counter(
        "paxos_rpc_dropped_total",
        "Messages discarded by fault injection",
        ["node_id", "direction"]
    ),
}


# Forgetting protocol
forgetting_metrics = {
    "global_min": Gauge(
        "paxos_global_min",
        "Current Min() of the peer",
        ["node_id"]
    ),
    "instances": Gauge(
        "paxos_instances",
        "Number of instances held in the log",
        ["node_id"]
    ),
    "forgotten": Counter(
        "paxos_instances_forgotten_total",
        "Number of instances purged by the forgetting protocol",
        ["node_id"]
    ),
}
