"""
Monthly budget evaluation.

The percentage shown on a progress bar is capped at 100, but the
over-budget decision compares the raw figures.
"""
from errors import ValidationError
from schemas import BudgetStatus


def evaluate_budget(total_expenses: float, monthly_budget: float) -> BudgetStatus:
    if total_expenses < 0:
        raise ValidationError("total expenses cannot be negative")
    if monthly_budget < 0:
        raise ValidationError("monthly budget cannot be negative")

    # 0 means the user never set a budget
    if monthly_budget == 0:
        return BudgetStatus(
            monthly_budget=0,
            total_expenses=total_expenses,
            progress_percentage=0,
            status="no-budget",
            overage=0,
            remaining=0,
        )

    progress = min(total_expenses / monthly_budget * 100, 100)
    over = total_expenses > monthly_budget
    return BudgetStatus(
        monthly_budget=monthly_budget,
        total_expenses=total_expenses,
        progress_percentage=round(progress, 2),
        status="over-budget" if over else "on-track",
        overage=round(max(total_expenses - monthly_budget, 0), 2),
        remaining=round(max(monthly_budget - total_expenses, 0), 2),
    )
