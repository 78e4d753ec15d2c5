from shared.search.orchestrator import SearchOrchestrator, opportunity_text

__all__ = ["SearchOrchestrator", "opportunity_text"]
