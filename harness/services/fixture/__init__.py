from harness.services.fixture.reconciler import CleanupReport, FixtureReconciler

__all__ = ["CleanupReport", "FixtureReconciler"]
