from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


# ===== AI analysis ===== #

class FatigueRequest(BaseModel):
    action: Optional[str] = None  # analyze | detect
    creative_id: str
    daily_metrics: Optional[List[Dict[str, Any]]] = None
    estimated_audience_size: Optional[float] = None
    # Only used by "detect"
    peak_ctr: Optional[float] = None
    current_ctr: Optional[float] = None
    current_frequency: Optional[float] = None
    saturation_index: Optional[float] = None
    days_running: Optional[int] = None


class PatternsRequest(BaseModel):
    action: str  # mine_success | mine_failure | detect_seasonal | match | cross_campaign
    records: List[Dict[str, Any]] = []
    metric: Optional[str] = None
    threshold: Optional[float] = None
    min_occurrences: int = 5
    period: str = "weekly"
    patterns: List[Dict[str, Any]] = []
    context: Dict[str, Any] = {}
    campaigns: List[Dict[str, Any]] = []


class ExplainRequest(BaseModel):
    recommendation_type: str
    target_metric: str
    current_metrics: Dict[str, float]
    historical_metrics: Dict[str, float]
    expected_impact: float = 0
    confidence: float = Field(default=0.5, ge=0, le=1)
    industry_benchmarks: Optional[Dict[str, float]] = None
    patterns: Optional[List[Dict[str, Any]]] = None
    similar_cases: Optional[List[Dict[str, Any]]] = None
    attribution_window: Optional[int] = None
    is_learning_phase: bool = False


class QueryRequest(BaseModel):
    query: str
    results: Optional[List[Dict[str, Any]]] = None
    aggregates: Optional[Dict[str, float]] = None


class RbacCheckRequest(BaseModel):
    action: str  # check_permission | check_access | can_approve | approval_required
    role: Optional[str] = Field(default=None, description="Role to check; defaults to the caller's role")
    permission: Optional[Dict[str, Any]] = None  # {"resource", "action"}
    action_type: Optional[str] = None
    risk_score: float = 0
    resource_owner_id: Optional[str] = None


# ===== Data health ===== #

class HealthRecalculateRequest(BaseModel):
    org_id: Optional[str] = None
    entity_type: str = "campaign"
    entity_id: Optional[str] = None


# ===== Recommendations ===== #

class RecommendationCreateRequest(BaseModel):
    org_id: str
    recommendation_type: str
    entity_type: str
    entity_id: str
    title: str
    action: Dict[str, Any] = Field(..., description="Action to apply, stored as action_json")
    description: Optional[str] = None
    confidence_score: Optional[float] = Field(default=None, ge=0, le=1)
    evidence: Optional[Dict[str, Any]] = None
    reasoning_steps: Optional[List[Any]] = None
    baseline_metrics: Optional[Dict[str, Any]] = None
    agent_run_id: Optional[str] = None
    prompt_version: Optional[str] = None
    expires_at: Optional[str] = None


class RecommendationStatusUpdate(BaseModel):
    id: str
    status: Optional[str] = None
    user_feedback: Optional[str] = None
    applied_at: Optional[str] = None
    evaluation_window_start: Optional[str] = None
    evaluation_window_end: Optional[str] = None


class RecommendationActionRequest(BaseModel):
    action: str  # accept | reject | apply
    feedback: Optional[str] = None


# ===== Prompts ===== #

class PromptVersionCreateRequest(BaseModel):
    prompt_name: str
    version: str
    prompt_text: str
    tool_definitions: Optional[Any] = None
    set_as_default: bool = False


class PromptVersionUpdateRequest(BaseModel):
    id: str
    is_active: Optional[bool] = None
    is_default: Optional[bool] = None
    success_rate: Optional[float] = None
    avg_latency_ms: Optional[float] = None
    total_runs: Optional[int] = None


# ===== Preferences ===== #

class AIPreferencesRequest(BaseModel):
    org_id: str
    primary_kpi: Optional[str] = None
    secondary_kpis: Optional[List[str]] = None
    kpi_targets: Optional[Dict[str, float]] = None
    min_budget: Optional[float] = None
    max_budget: Optional[float] = None
    never_pause_entities: Optional[List[str]] = None
    never_recommend_actions: Optional[List[str]] = None
    alert_thresholds: Optional[Dict[str, Any]] = None
    notification_channels: Optional[List[str]] = None


# ===== Traits ===== #

class LearnedTraitRequest(BaseModel):
    trait_name: str
    definition: str
    trait_category: Optional[str] = None
    business_type: Optional[str] = None


class PublicTraitCreateRequest(BaseModel):
    name: str
    group: Optional[str] = None
    emoji: Optional[str] = None
    description: Optional[str] = None
    created_by_ai: bool = False


class PublicTraitReviewRequest(BaseModel):
    id: str
    status: Optional[str] = None  # approved | rejected | pending
    name: Optional[str] = None
    group: Optional[str] = None
    emoji: Optional[str] = None
    description: Optional[str] = None


# ===== Organizer messages ===== #

class MessageSendRequest(BaseModel):
    to_user_id: str
    content: str
    subject: Optional[str] = None
    parent_message_id: Optional[str] = None


class MessageUpdateRequest(BaseModel):
    message_id: Optional[str] = None
    is_read: bool = True
    mark_all_read: bool = False


# ===== Data pools ===== #

class DataPoolCreateRequest(BaseModel):
    name: str
    slug: str
    description: Optional[str] = None
    industry: Optional[str] = None
    platform: Optional[str] = None
    target_audience: Optional[str] = None
    creative_format: Optional[str] = None
    is_public: bool = True
    requires_approval: bool = True
    access_tier: str = "standard"


class DataAccessRequest(BaseModel):
    pool_id: str
    reason: Optional[str] = None
    intended_use: Optional[str] = None


# ===== Public pool ===== #

class PoolInsight(BaseModel):
    traits: List[str]
    z_score: float
    industry: Optional[str] = None


class PoolContributeRequest(BaseModel):
    insights: List[PoolInsight] = []
    contributor_hash: Optional[str] = None


class PoolAnonymizeRequest(BaseModel):
    content: Dict[str, Any]
    success_score: float
    baseline: Optional[Dict[str, float]] = None
    ad_spend: Optional[float] = None
    include_industry: bool = False
    include_platform: bool = False
    include_spend_tier: bool = False


class PoolSearchRequest(BaseModel):
    traits: Optional[List[str]] = None
    industry: Optional[str] = None
    platform: Optional[str] = None
    audience: Optional[str] = None
    format: Optional[str] = None


# ===== Facebook Marketing API ===== #

class CampaignCreateRequest(BaseModel):
    name: str
    objective: str
    status: str = "PAUSED"
    special_ad_categories: Optional[List[str]] = None
    ad_account_id: Optional[str] = None


class AdSetCreateRequest(BaseModel):
    name: str
    campaign_id: str
    targeting: Dict[str, Any] = {}
    daily_budget: Optional[float] = Field(default=None, description="Currency units, sent to Meta as cents")
    lifetime_budget: Optional[float] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    optimization_goal: Optional[str] = None
    billing_event: str = "IMPRESSIONS"
    bid_amount: Optional[float] = None
    status: str = "PAUSED"
    destination_type: Optional[str] = None
    page_id: Optional[str] = None
    ad_account_id: Optional[str] = None


# ===== Conversions API ===== #

class CapiSendRequest(BaseModel):
    dataset_id: Optional[str] = None
    access_token: Optional[str] = None
    event_name: str
    event_time: Optional[int] = None
    event_id: Optional[str] = None
    lead_id: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    client_ip_address: Optional[str] = None
    client_user_agent: Optional[str] = None
    value: Optional[float] = None
    currency: Optional[str] = None
    custom_data: Optional[Dict[str, Any]] = None
