"""Receipt State Machine Guard.

Uses python-statemachine to enforce legal receipt transitions. Whatever order
the ledger reports progress in, a receipt can never be verified before it was
committed, and nothing leaves a terminal state.

Transition table:
    SUBMITTED  -> COMMITTED   (batch_committed)
    SUBMITTED  -> REJECTED    (operation_rejected)
    COMMITTED  -> VERIFIED    (batch_verified)
"""

from __future__ import annotations

from statemachine import State, StateMachine


class ReceiptStateMachine(StateMachine):
    """State machine that guards the confirmation lifecycle of one operation.

    Usage:
        sm = ReceiptStateMachine()
        sm.batch_committed()  # transitions to COMMITTED
        sm.status             # "COMMITTED"
    """

    # --- States ---
    SUBMITTED = State("SUBMITTED", initial=True)
    COMMITTED = State("COMMITTED")
    VERIFIED = State("VERIFIED", final=True)
    REJECTED = State("REJECTED", final=True)

    # --- Events / Transitions ---
    batch_committed = SUBMITTED.to(COMMITTED)
    batch_verified = COMMITTED.to(VERIFIED)
    operation_rejected = SUBMITTED.to(REJECTED)

    def __init__(self, current_status: str = "SUBMITTED") -> None:
        """Initialize the state machine at a given status.

        Args:
            current_status: A ReceiptStatus value (e.g., "COMMITTED").
        """
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        self._status = current_status
        self._final_values = {s.value for s in self.states if s.final}
        super().__init__(start_value=current_status)

    def on_enter_state(self, target: State) -> None:
        self._status = str(target.value)

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches ReceiptStatus enum)."""
        return self._status

    @property
    def is_terminal(self) -> bool:
        return self._status in self._final_values

    def get_allowed_events(self) -> list[str]:
        """Return the ids of the events that can fire from the current state."""
        return [event.id for event in self.allowed_events]

    def advance_to(self, target: str) -> list[str]:
        """Fire every event needed to reach ``target`` from the current state.

        A ledger that reports "verified" for an operation the harness has
        only seen as submitted gets the commit replayed first.

        Returns:
            The event names fired, in order.

        Raises:
            TransitionNotAllowed: If ``target`` is unreachable from here.
        """
        fired: list[str] = []
        if self.status == target:
            return fired
        if target == "VERIFIED" and self.status == "SUBMITTED":
            self.batch_committed()
            fired.append("batch_committed")
        event = {
            "COMMITTED": "batch_committed",
            "VERIFIED": "batch_verified",
            "REJECTED": "operation_rejected",
        }.get(target)
        if event is None:
            raise ValueError(f"Cannot advance to '{target}'")
        getattr(self, event)()
        fired.append(event)
        return fired
