from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, TypedDict


class EntityKind(str, Enum):
    USER = "USER"
    STARTUP = "STARTUP"
    STARTUP_ROLE = "STARTUP_ROLE"
    APPLICATION = "APPLICATION"
    ACCESS_REQUEST = "ACCESS_REQUEST"
    CONVERSATION = "CONVERSATION"
    MESSAGE = "MESSAGE"
    SUBSCRIPTION = "SUBSCRIPTION"
    NOTIFICATION = "NOTIFICATION"
    AUDIT_LOG = "AUDIT_LOG"


class BaseItem(TypedDict, total=False):
    """Common attributes for single-table items."""

    PK: str
    SK: str
    entityType: str
    createdAt: str
    updatedAt: str
    # Reverse lookups, open roles, conversation participants
    GSI1PK: str
    GSI1SK: str
    # Status / visibility compound keys
    GSI2PK: str
    GSI2SK: str


class UserItem(BaseItem, total=False):
    userId: str
    email: str
    role: str
    firstName: str
    lastName: str
    avatarUrl: str
    bio: str
    skills: List[str]
    linkedinUrl: str
    status: str
    stripeCustomerId: str
    subscriptionStatus: str
    subscriptionTier: str


class StartupItem(BaseItem, total=False):
    startupId: str
    founderId: str
    name: str
    tagline: str
    description: str
    industry: str
    stage: str
    fundingGoal: Any
    fundingRaised: Any
    logoUrl: str
    websiteUrl: str
    pitchDeckUrl: str
    visibility: str
    status: str
    teamSize: int
    location: str
    tags: List[str]


class StartupRoleItem(BaseItem, total=False):
    roleId: str
    startupId: str
    title: str
    description: str
    type: str
    compensation: str
    equityRange: str
    skills: List[str]
    isOpen: bool
    applicantCount: int


class ApplicationItem(BaseItem, total=False):
    applicationId: str
    startupId: str
    roleId: str
    applicantId: str
    coverLetter: str
    resumeUrl: str
    status: str
    founderNotes: str


class ConversationItem(BaseItem, total=False):
    conversationId: str
    participants: List[str]
    type: str
    relatedStartupId: str
    relatedApplicationId: str
    lastMessageAt: str
    lastMessagePreview: str


class MessageItem(BaseItem, total=False):
    messageId: str
    conversationId: str
    senderId: str
    content: str
    type: str
    fileUrl: str
    readBy: List[str]


class SubscriptionItem(BaseItem, total=False):
    userId: str
    stripeCustomerId: str
    stripeSubscriptionId: str
    stripePriceId: str
    tier: str
    status: str
    currentPeriodStart: str
    currentPeriodEnd: str
    cancelAtPeriodEnd: bool


class NotificationItem(BaseItem, total=False):
    notificationId: str
    userId: str
    type: str
    title: str
    body: str
    relatedEntityType: str
    relatedEntityId: str
    isRead: bool
    readAt: str


class AuditLogItem(BaseItem, total=False):
    auditId: str
    userId: str
    action: str
    resourceType: str
    resourceId: str
    ipAddress: str
    userAgent: str
    metadata: Dict[str, Any]


class QueryPage(NamedTuple):
    """One page of a range or index query."""

    items: List[Dict[str, Any]]
    next_cursor: Optional[str] = None
