from groupbuy.services.deal_store import DealStore
from groupbuy.services.join_engine import JoinEngine, Joined
from groupbuy.services.lifecycle_sweeper import LifecycleSweeper, SweepReport

__all__ = ["DealStore", "JoinEngine", "Joined", "LifecycleSweeper", "SweepReport"]
