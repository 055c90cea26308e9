from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class TokenBudget:
    """Cumulative token consumption measured against a fixed ceiling.

    Consumption only grows. Failed calls still report whatever they were billed,
    and overshooting the ceiling inside a step is fine: exhaustion is only
    checked by the loop at step boundaries.
    """

    ceiling: int
    consumed: int = 0
    by_caller: dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.ceiling < 0:
            raise ValueError("Token budget ceiling must be >= 0")

    def consume(self, amount: int, caller: str = "unknown") -> int:
        if amount < 0:
            raise ValueError(f"Cannot consume a negative amount of tokens: {amount}")
        self.consumed += amount
        self.by_caller[caller] = self.by_caller.get(caller, 0) + amount
        return self.consumed

    def exhausted(self) -> bool:
        return self.consumed >= self.ceiling

    def usage_ratio(self) -> float:
        if self.ceiling <= 0:
            return 1.0
        return self.consumed / self.ceiling

    def remaining(self) -> int:
        return max(self.ceiling - self.consumed, 0)
