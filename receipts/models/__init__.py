from receipts.models.account import Account, Plan  # noqa: F401
from receipts.models.document import (  # noqa: F401
    ActivityEvent,
    Completion,
    Document,
    DocumentActivity,
    DocumentPriority,
    DocumentResponsibility,
    DocumentVersion,
    NotificationMode,
    NotificationPreference,
    Recipient,
    RecipientSource,
    VersionSourceType,
)
from receipts.models.stack import (  # noqa: F401
    DeliveryStatus,
    Stack,
    StackAcknowledgement,
    StackDelivery,
    StackDeliveryDocument,
    StackDeliveryRecipient,
    StackItem,
    StackReceipt,
)
from receipts.models.workspace import (  # noqa: F401
    Contact,
    ContactGroup,
    ContactGroupMember,
    MemberRole,
    Workspace,
    WorkspaceMember,
    WorkspaceTemplate,
)
