# database/models.py
import uuid
from datetime import date, datetime
from typing import Any, Dict

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

# Important: must match Base from db_setup.py
from .db_setup import Base, utcnow


def new_id() -> str:
    return uuid.uuid4().hex


class SerializerMixin:
    """JSON-safe ``as_dict`` for API responses."""

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for column in self.__table__.columns:
            value = getattr(self, column.name)
            if isinstance(value, (datetime, date)):
                value = value.isoformat()
            data[column.name] = value
        return data


class TimestampMixin:
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


# ---------------------------------------------------------------------
# Tenancy & identity
# ---------------------------------------------------------------------
class Organization(SerializerMixin, TimestampMixin, Base):
    __tablename__ = "organizations"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    slug = Column(String(63), nullable=False, unique=True, index=True)
    type = Column(String(32), nullable=False, default="SEARCH_FUND")  # SEARCH_FUND | MID_PE
    legal_name = Column(String(255))
    entity_type = Column(String(64))
    jurisdiction = Column(String(255))
    subscription_status = Column(String(32), default="TRIALING")
    subscription_tier = Column(String(32))
    trial_ends_at = Column(DateTime)

    funds = relationship("Fund", back_populates="organization")
    users = relationship("User", back_populates="organization")

    def __repr__(self):
        return f"<Organization(id={self.id}, slug={self.slug})>"


class User(SerializerMixin, TimestampMixin, Base):
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=new_id)
    email = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(100), nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(32), nullable=False, default="ANALYST")
    organization_id = Column(String(32), ForeignKey("organizations.id"))
    investor_id = Column(String(32), ForeignKey("investors.id"), unique=True)  # LP portal accounts
    is_active = Column(Boolean, nullable=False, default=True)
    last_login_at = Column(DateTime)

    organization = relationship("Organization", back_populates="users")
    memberships = relationship("FundMember", back_populates="user")

    def as_dict(self) -> Dict[str, Any]:
        data = super().as_dict()
        data.pop("password_hash", None)
        return data

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"


class Fund(SerializerMixin, TimestampMixin, Base):
    __tablename__ = "funds"

    id = Column(String(32), primary_key=True, default=new_id)
    organization_id = Column(String(32), ForeignKey("organizations.id"), index=True)
    name = Column(String(200), nullable=False)
    slug = Column(String(63), nullable=False, unique=True, index=True)
    type = Column(String(32), nullable=False, default="TRADITIONAL_SEARCH_FUND")
    status = Column(String(32), nullable=False, default="RAISING")
    target_size = Column(Float, nullable=False, default=0.0)
    currency = Column(String(3), nullable=False, default="USD")
    vintage = Column(Integer)
    strategy = Column(String(500))
    management_fee = Column(Float)
    carried_interest = Column(Float)
    hurdle_rate = Column(Float)
    catch_up_rate = Column(Float)

    organization = relationship("Organization", back_populates="funds")
    members = relationship("FundMember", back_populates="fund")

    def __repr__(self):
        return f"<Fund(id={self.id}, name={self.name}, status={self.status})>"


class FundMember(SerializerMixin, TimestampMixin, Base):
    __tablename__ = "fund_members"
    __table_args__ = (UniqueConstraint("fund_id", "user_id", name="uq_fund_member"),)

    id = Column(String(32), primary_key=True, default=new_id)
    fund_id = Column(String(32), ForeignKey("funds.id"), nullable=False, index=True)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    role = Column(String(32), nullable=False, default="ANALYST")
    permissions = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)

    fund = relationship("Fund", back_populates="members")
    user = relationship("User", back_populates="memberships")


# ---------------------------------------------------------------------
# Deal pipeline
# ---------------------------------------------------------------------
class Deal(SerializerMixin, TimestampMixin, Base):
    __tablename__ = "deals"

    id = Column(String(32), primary_key=True, default=new_id)
    fund_id = Column(String(32), ForeignKey("funds.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    company_name = Column(String(255))
    industry = Column(String(255))
    stage = Column(String(32), nullable=False, default="IDENTIFIED")
    status = Column(String(32), nullable=False, default="ACTIVE")
    source = Column(String(64))
    description = Column(Text)
    asking_price = Column(Float)
    revenue = Column(Float)
    ebitda = Column(Float)
    revenue_multiple = Column(Float)
    ebitda_multiple = Column(Float)
    gross_margin = Column(Float)
    ebitda_margin = Column(Float)
    employee_count = Column(Integer)
    year_founded = Column(Integer)
    city = Column(String(128))
    state = Column(String(128))
    country = Column(String(128))
    investment_thesis = Column(Text)
    key_risks = Column(Text)
    next_steps = Column(Text)
    expected_close_date = Column(Date)
    actual_close_date = Column(Date)
    attractiveness_score = Column(Integer)
    fit_score = Column(Integer)
    risk_score = Column(Integer)
    composite_score = Column(Float)
    created_by_id = Column(String(32), ForeignKey("users.id"))
    deleted_at = Column(DateTime)

    def __repr__(self):
        return f"<Deal(id={self.id}, name={self.name}, stage={self.stage})>"


# ---------------------------------------------------------------------
# Investors & commitments
# ---------------------------------------------------------------------
class Investor(SerializerMixin, TimestampMixin, Base):
    __tablename__ = "investors"

    id = Column(String(32), primary_key=True, default=new_id)
    organization_id = Column(String(32), ForeignKey("organizations.id"), index=True)
    name = Column(String(255), nullable=False)
    type = Column(String(32), nullable=False, default="INDIVIDUAL")
    status = Column(String(32), nullable=False, default="PROSPECT")
    email = Column(String(255))
    phone = Column(String(64))
    contact_name = Column(String(255))
    contact_email = Column(String(255))
    city = Column(String(128))
    country = Column(String(128))
    notes = Column(Text)
    deleted_at = Column(DateTime)

    commitments = relationship("Commitment", back_populates="investor")

    def __repr__(self):
        return f"<Investor(id={self.id}, name={self.name}, type={self.type})>"


class Commitment(SerializerMixin, TimestampMixin, Base):
    __tablename__ = "commitments"

    id = Column(String(32), primary_key=True, default=new_id)
    investor_id = Column(String(32), ForeignKey("investors.id"), nullable=False, index=True)
    fund_id = Column(String(32), ForeignKey("funds.id"), nullable=False, index=True)
    committed_amount = Column(Float, nullable=False)
    called_amount = Column(Float, nullable=False, default=0.0)
    paid_amount = Column(Float, nullable=False, default=0.0)
    distributed_amount = Column(Float, nullable=False, default=0.0)
    status = Column(String(32), nullable=False, default="PENDING")
    commitment_date = Column(Date)
    notes = Column(Text)
    deleted_at = Column(DateTime)

    investor = relationship("Investor", back_populates="commitments")


# ---------------------------------------------------------------------
# Capital activity
# ---------------------------------------------------------------------
class CapitalCall(SerializerMixin, TimestampMixin, Base):
    __tablename__ = "capital_calls"

    id = Column(String(32), primary_key=True, default=new_id)
    fund_id = Column(String(32), ForeignKey("funds.id"), nullable=False, index=True)
    call_number = Column(Integer, nullable=False)
    call_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    total_amount = Column(Float, nullable=False)
    for_investment = Column(Float)
    for_fees = Column(Float)
    for_expenses = Column(Float)
    purpose = Column(Text)
    deal_reference = Column(String(255))
    status = Column(String(32), nullable=False, default="DRAFT")
    notice_date = Column(Date)
    completed_date = Column(Date)
    deleted_at = Column(DateTime)

    items = relationship("CapitalCallItem", back_populates="capital_call", order_by="CapitalCallItem.created_at")

    def __repr__(self):
        return f"<CapitalCall(id={self.id}, number={self.call_number}, status={self.status})>"


class CapitalCallItem(SerializerMixin, TimestampMixin, Base):
    __tablename__ = "capital_call_items"

    id = Column(String(32), primary_key=True, default=new_id)
    capital_call_id = Column(String(32), ForeignKey("capital_calls.id"), nullable=False, index=True)
    investor_id = Column(String(32), ForeignKey("investors.id"), nullable=False, index=True)
    commitment_id = Column(String(32), ForeignKey("commitments.id"))
    call_amount = Column(Float, nullable=False)
    paid_amount = Column(Float, nullable=False, default=0.0)
    status = Column(String(32), nullable=False, default="PENDING")
    paid_date = Column(Date)
    notes = Column(Text)

    capital_call = relationship("CapitalCall", back_populates="items")
    investor = relationship("Investor")


class Distribution(SerializerMixin, TimestampMixin, Base):
    __tablename__ = "distributions"

    id = Column(String(32), primary_key=True, default=new_id)
    fund_id = Column(String(32), ForeignKey("funds.id"), nullable=False, index=True)
    distribution_number = Column(Integer, nullable=False)
    distribution_date = Column(Date, nullable=False)
    total_amount = Column(Float, nullable=False)
    type = Column(String(32), nullable=False, default="PROFIT_DISTRIBUTION")
    source = Column(String(255))
    description = Column(Text)
    status = Column(String(32), nullable=False, default="DRAFT")
    approved_date = Column(Date)
    approved_by_id = Column(String(32), ForeignKey("users.id"))
    paid_date = Column(Date)
    deleted_at = Column(DateTime)

    items = relationship("DistributionItem", back_populates="distribution", order_by="DistributionItem.created_at")

    def __repr__(self):
        return f"<Distribution(id={self.id}, number={self.distribution_number}, status={self.status})>"


class DistributionItem(SerializerMixin, TimestampMixin, Base):
    __tablename__ = "distribution_items"

    id = Column(String(32), primary_key=True, default=new_id)
    distribution_id = Column(String(32), ForeignKey("distributions.id"), nullable=False, index=True)
    investor_id = Column(String(32), ForeignKey("investors.id"), nullable=False, index=True)
    commitment_id = Column(String(32), ForeignKey("commitments.id"))
    gross_amount = Column(Float, nullable=False)
    withholding_tax = Column(Float, nullable=False, default=0.0)
    net_amount = Column(Float, nullable=False)
    status = Column(String(32), nullable=False, default="PENDING")
    paid_date = Column(Date)

    distribution = relationship("Distribution", back_populates="items")
    investor = relationship("Investor")


# ---------------------------------------------------------------------
# Portfolio monitoring
# ---------------------------------------------------------------------
class PortfolioCompany(SerializerMixin, TimestampMixin, Base):
    __tablename__ = "portfolio_companies"

    id = Column(String(32), primary_key=True, default=new_id)
    fund_id = Column(String(32), ForeignKey("funds.id"), nullable=False, index=True)
    deal_id = Column(String(32), ForeignKey("deals.id"))
    name = Column(String(255), nullable=False)
    legal_name = Column(String(255))
    industry = Column(String(255))
    description = Column(Text)
    website = Column(String(255))
    ceo_name = Column(String(255))
    status = Column(String(32), nullable=False, default="HOLDING")
    acquisition_date = Column(Date, nullable=False)
    exit_date = Column(Date)
    entry_valuation = Column(Float, nullable=False)
    total_investment = Column(Float)
    equity_invested = Column(Float, nullable=False)
    debt_financing = Column(Float)
    ownership_pct = Column(Float, nullable=False)
    current_valuation = Column(Float)
    unrealized_value = Column(Float)
    realized_value = Column(Float, default=0.0)
    total_value = Column(Float)
    moic = Column(Float)
    irr = Column(Float)
    deleted_at = Column(DateTime)

    metrics = relationship("PortfolioMetric", back_populates="company", order_by="PortfolioMetric.period_date")
    valuations = relationship("Valuation", back_populates="company", order_by="Valuation.valuation_date")

    def __repr__(self):
        return f"<PortfolioCompany(id={self.id}, name={self.name}, status={self.status})>"


class PortfolioMetric(SerializerMixin, Base):
    __tablename__ = "portfolio_metrics"

    id = Column(String(32), primary_key=True, default=new_id)
    company_id = Column(String(32), ForeignKey("portfolio_companies.id"), nullable=False, index=True)
    period_date = Column(Date, nullable=False)
    period_type = Column(String(16), nullable=False, default="QUARTERLY")
    revenue = Column(Float)
    revenue_growth = Column(Float)
    gross_profit = Column(Float)
    gross_margin = Column(Float)
    ebitda = Column(Float)
    ebitda_margin = Column(Float)
    net_income = Column(Float)
    operating_cash_flow = Column(Float)
    free_cash_flow = Column(Float)
    cash_balance = Column(Float)
    total_debt = Column(Float)
    net_debt = Column(Float)
    employee_count = Column(Integer)
    customer_count = Column(Integer)
    current_valuation = Column(Float)
    ev_ebitda = Column(Float)
    notes = Column(Text)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    company = relationship("PortfolioCompany", back_populates="metrics")


class Valuation(SerializerMixin, Base):
    __tablename__ = "valuations"

    id = Column(String(32), primary_key=True, default=new_id)
    company_id = Column(String(32), ForeignKey("portfolio_companies.id"), nullable=False, index=True)
    valuation_date = Column(Date, nullable=False)
    value = Column(Float, nullable=False)
    methodology = Column(String(64), nullable=False)
    notes = Column(Text)
    is_official = Column(Boolean, nullable=False, default=False)
    created_by_id = Column(String(32), ForeignKey("users.id"))
    created_at = Column(DateTime, default=utcnow, nullable=False)

    company = relationship("PortfolioCompany", back_populates="valuations")


# ---------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------
class Report(SerializerMixin, TimestampMixin, Base):
    __tablename__ = "reports"

    id = Column(String(32), primary_key=True, default=new_id)
    fund_id = Column(String(32), ForeignKey("funds.id"), nullable=False, index=True)
    type = Column(String(32), nullable=False, default="QUARTERLY_UPDATE")
    title = Column(String(255), nullable=False)
    period_start = Column(Date)
    period_end = Column(Date)
    content = Column(JSON, nullable=False, default=dict)
    status = Column(String(32), nullable=False, default="DRAFT")
    published_at = Column(DateTime)
    published_by_id = Column(String(32), ForeignKey("users.id"))
    created_by_id = Column(String(32), ForeignKey("users.id"))
    sent_to_lps = Column(Boolean, nullable=False, default=False)
    sent_at = Column(DateTime)


# ---------------------------------------------------------------------
# Deal workspace
# ---------------------------------------------------------------------
class Activity(SerializerMixin, Base):
    __tablename__ = "activities"

    id = Column(String(32), primary_key=True, default=new_id)
    deal_id = Column(String(32), ForeignKey("deals.id"), nullable=False, index=True)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=False)
    type = Column(String(32), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    user = relationship("User")


class DealNote(SerializerMixin, TimestampMixin, Base):
    __tablename__ = "deal_notes"

    id = Column(String(32), primary_key=True, default=new_id)
    deal_id = Column(String(32), ForeignKey("deals.id"), nullable=False, index=True)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)

    user = relationship("User")


class Task(SerializerMixin, TimestampMixin, Base):
    __tablename__ = "tasks"

    id = Column(String(32), primary_key=True, default=new_id)
    fund_id = Column(String(32), ForeignKey("funds.id"), nullable=False, index=True)
    deal_id = Column(String(32), ForeignKey("deals.id"), index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    status = Column(String(32), nullable=False, default="TODO")
    priority = Column(String(16), nullable=False, default="MEDIUM")
    due_date = Column(Date)
    completed_at = Column(DateTime)
    assignee_id = Column(String(32), ForeignKey("users.id"), nullable=False)
    created_by_id = Column(String(32), ForeignKey("users.id"), nullable=False)

    assignee = relationship("User", foreign_keys=[assignee_id])


class DueDiligenceItem(SerializerMixin, TimestampMixin, Base):
    __tablename__ = "due_diligence_items"

    id = Column(String(32), primary_key=True, default=new_id)
    deal_id = Column(String(32), ForeignKey("deals.id"), nullable=False, index=True)
    category = Column(String(32), nullable=False)
    item = Column(String(500), nullable=False)
    status = Column(String(32), nullable=False, default="NOT_STARTED")
    priority = Column(Integer, nullable=False, default=3)
    assigned_to = Column(String(255))
    notes = Column(Text)
    findings = Column(Text)
    red_flag = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime)


# ---------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------
class Document(SerializerMixin, TimestampMixin, Base):
    __tablename__ = "documents"

    id = Column(String(32), primary_key=True, default=new_id)
    fund_id = Column(String(32), ForeignKey("funds.id"), nullable=False, index=True)
    deal_id = Column(String(32), ForeignKey("deals.id"), index=True)
    investor_id = Column(String(32), ForeignKey("investors.id"), index=True)
    name = Column(String(255), nullable=False)
    file_name = Column(String(255), nullable=False)
    file_url = Column(String(1024))
    file_type = Column(String(128))
    file_size = Column(Integer, nullable=False, default=0)
    category = Column(String(32), nullable=False, default="OTHER")
    version = Column(Integer, nullable=False, default=1)
    is_latest = Column(Boolean, nullable=False, default=True)
    parent_id = Column(String(32), ForeignKey("documents.id"), index=True)
    visible_to_lps = Column(Boolean, nullable=False, default=False)
    uploaded_by_id = Column(String(32), ForeignKey("users.id"))
    deleted_at = Column(DateTime)

    def __repr__(self):
        return f"<Document(id={self.id}, name={self.name}, version={self.version})>"


# ---------------------------------------------------------------------
# LP relations & notifications
# ---------------------------------------------------------------------
class Communication(SerializerMixin, Base):
    __tablename__ = "communications"

    id = Column(String(32), primary_key=True, default=new_id)
    investor_id = Column(String(32), ForeignKey("investors.id"), nullable=False, index=True)
    fund_id = Column(String(32), ForeignKey("funds.id"), index=True)
    type = Column(String(32), nullable=False)
    direction = Column(String(16), nullable=False)
    subject = Column(String(255))
    content = Column(Text)
    contact_name = Column(String(255))
    sent_by = Column(String(255))
    date = Column(DateTime, default=utcnow, nullable=False, index=True)
    follow_up_date = Column(Date)
    follow_up_done = Column(Boolean, nullable=False, default=False)
    notes = Column(Text)


class Notification(SerializerMixin, Base):
    __tablename__ = "notifications"

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(32), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    link = Column(String(500))
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)


# ---------------------------------------------------------------------
# Audit trail & AI copilot
# ---------------------------------------------------------------------
class AuditLog(SerializerMixin, Base):
    __tablename__ = "audit_logs"

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(32), ForeignKey("users.id"), index=True)
    action = Column(String(16), nullable=False)
    entity_type = Column(String(64), nullable=False, index=True)
    entity_id = Column(String(64), nullable=False)
    changes = Column(JSON)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(action={self.action}, entity={self.entity_type}:{self.entity_id})>"


class AIConversation(SerializerMixin, TimestampMixin, Base):
    __tablename__ = "ai_conversations"

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    fund_id = Column(String(32), ForeignKey("funds.id"), nullable=False, index=True)
    title = Column(String(60))
    archived_at = Column(DateTime)

    messages = relationship("AIMessage", back_populates="conversation", order_by="AIMessage.created_at")


class AIMessage(SerializerMixin, Base):
    __tablename__ = "ai_messages"

    id = Column(String(64), primary_key=True, default=new_id)
    conversation_id = Column(String(32), ForeignKey("ai_conversations.id"), nullable=False, index=True)
    role = Column(String(16), nullable=False)
    content = Column(Text, nullable=False, default="")
    token_count = Column(Integer, nullable=False, default=0)
    tool_calls = Column(JSON)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    conversation = relationship("AIConversation", back_populates="messages")
