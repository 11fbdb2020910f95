"""Tests for guard failure message resolution."""

from workorder_payroll.services.guard_messages import (
    DEFAULT_GUARD_MESSAGE,
    GuardMessageResolver,
    RequiredAssociation,
)


class TestGuardMessageResolver:
    """Test requirement → message lookup."""

    def test_known_requirements(self):
        resolver = GuardMessageResolver()
        assert resolver.resolve([RequiredAssociation.ITEMS]) == (
            "Cannot submit work order: Please add at least one item/resource before submitting."
        )
        assert resolver.resolve([RequiredAssociation.WORKERS_OR_ITEMS]) == (
            "Cannot submit work order: Please add at least one worker or item before submitting."
        )

    def test_first_requirement_wins(self):
        resolver = GuardMessageResolver()
        message = resolver.resolve([RequiredAssociation.WORKERS, RequiredAssociation.ITEMS])
        assert "at least one worker before" in message

    def test_empty_set_falls_back_to_default(self):
        assert GuardMessageResolver().resolve([]) == DEFAULT_GUARD_MESSAGE
        assert DEFAULT_GUARD_MESSAGE == "Cannot submit work order: Required information is missing."

    def test_unregistered_requirement_falls_back_to_default(self):
        resolver = GuardMessageResolver(messages={})
        assert resolver.resolve([RequiredAssociation.WORKERS]) == DEFAULT_GUARD_MESSAGE

    def test_register_overrides_message(self):
        resolver = GuardMessageResolver()
        resolver.register(RequiredAssociation.WORKERS, "Assign a crew first.")
        assert resolver.resolve([RequiredAssociation.WORKERS]) == "Assign a crew first."

    def test_register_does_not_leak_into_other_resolvers(self):
        GuardMessageResolver().register(RequiredAssociation.ITEMS, "changed")
        assert GuardMessageResolver().resolve([RequiredAssociation.ITEMS]) != "changed"
