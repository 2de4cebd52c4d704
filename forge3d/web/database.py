"""
Plan persistence for the forge3d backend.

Uses SQLAlchemy with SQLite by default, supports PostgreSQL for production.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, String, create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from forge3d.models import PlanTier

Base = declarative_base()


class UserPlanModel(Base):
    """Current plan of a user, written by Stripe webhooks."""
    __tablename__ = "user_plans"

    user_id = Column(String(128), primary_key=True, index=True)
    plan = Column(String(20), nullable=False, default=PlanTier.FREE.value)
    stripe_customer_id = Column(String(64), nullable=True, index=True)
    stripe_subscription_id = Column(String(64), nullable=True, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "plan": self.plan,
            "stripe_customer_id": self.stripe_customer_id,
            "stripe_subscription_id": self.stripe_subscription_id,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class PlanStore:
    """Read and write user plans."""

    def __init__(self, database_url: str = "sqlite:///./forge3d.db"):
        kwargs = {}
        if database_url.startswith("sqlite"):
            # SQLite specific: check_same_thread=False for multi-threaded access
            kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool
        self.engine = create_engine(database_url, echo=False, **kwargs)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def session(self):
        """Context manager for database sessions."""
        db: Session = self.SessionLocal()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def get_plan(self, user_id: str) -> PlanTier:
        """Plan of a user; unknown users are free."""
        with self.session() as db:
            row = db.get(UserPlanModel, user_id)
            return PlanTier.parse(row.plan) if row else PlanTier.FREE

    def set_plan(
        self,
        user_id: str,
        plan: PlanTier,
        stripe_customer_id: Optional[str] = None,
        stripe_subscription_id: Optional[str] = None,
    ) -> PlanTier:
        """Create or update the plan of a user."""
        with self.session() as db:
            row = db.get(UserPlanModel, user_id)
            if row is None:
                row = UserPlanModel(user_id=user_id)
                db.add(row)
            row.plan = plan.value
            if stripe_customer_id:
                row.stripe_customer_id = stripe_customer_id
            if stripe_subscription_id:
                row.stripe_subscription_id = stripe_subscription_id
        return plan

    def find_user_by_subscription(self, subscription_id: str) -> Optional[str]:
        """User id owning a Stripe subscription."""
        with self.session() as db:
            row = (
                db.query(UserPlanModel)
                .filter(UserPlanModel.stripe_subscription_id == subscription_id)
                .first()
            )
            return row.user_id if row else None


__all__ = ["Base", "UserPlanModel", "PlanStore"]
