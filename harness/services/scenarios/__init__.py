from harness.services.scenarios.review import ReviewScenario, ScenarioResult

__all__ = ["ReviewScenario", "ScenarioResult"]
