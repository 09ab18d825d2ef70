"""
Prometheus metrics for remote calls and fragment assembly.

Counters are module-level like any prometheus_client collector; exporting them
(HTTP endpoint, push gateway) is left to the hosting application.
"""

from prometheus_client import Counter, Histogram


# ========== Transport Metrics ==========

requests_total = Counter(
    'dvid_mesh_requests_total',
    'HTTP attempts made by the credentialed transport',
    ['method', 'outcome']
)

retries_total = Counter(
    'dvid_mesh_retries_total',
    'Re-attempts of a call after a retryable failure',
    ['reason']
)

credential_refreshes_total = Counter(
    'dvid_mesh_credential_refreshes_total',
    'Credential refresh requests issued by the transport'
)

# ========== Fragment Metrics ==========

merge_branch_failures_total = Counter(
    'dvid_mesh_merge_branch_failures_total',
    'Merge graph branches that contributed no leaves'
)

assemblies_total = Counter(
    'dvid_mesh_assemblies_total',
    'Fragment assemblies by the path that produced them',
    ['path']
)

decode_time = Histogram(
    'dvid_mesh_decode_time_seconds',
    'Time spent decoding and merging fragment leaves',
    buckets=(0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0)
)
