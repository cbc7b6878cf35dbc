from app.workers.tasks.pvp_expiry import run_pvp_async_expiry

__all__ = [
    "run_pvp_async_expiry",
]
