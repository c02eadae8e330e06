from prometheus_client import Counter

DOCUMENTS_CREATED = Counter(
    "receipts_documents_created_total", "Documents created", ["scope"]
)
VERSIONS_CREATED = Counter("receipts_versions_created_total", "Document versions created")
VERSION_CONFLICTS = Counter(
    "receipts_version_conflicts_total", "Version writes that lost a compare-and-set"
)
COMPLETIONS_RECORDED = Counter(
    "receipts_completions_recorded_total", "Completions recorded", ["acknowledged"]
)
COMPLETIONS_REJECTED = Counter(
    "receipts_completions_rejected_total", "Completions rejected", ["reason"]
)
EMAILS_SENT = Counter("receipts_emails_sent_total", "Emails accepted by the mail API", ["template"])
EMAILS_FAILED = Counter("receipts_emails_failed_total", "Emails that failed to send", ["template"])
LICENSE_CHANGES = Counter(
    "receipts_license_changes_total", "Workspace license changes", ["action"]
)
STACK_DELIVERIES = Counter(
    "receipts_stack_deliveries_total", "Stack deliveries created", ["mode"]
)
STACK_RECEIPTS = Counter(
    "receipts_stack_receipts_total", "Stack acknowledgement receipts issued"
)
