from dataclasses import dataclass


@dataclass
class ProcessResult:
    expenses_created: int = 0
    incomes_created: int = 0
    total_processed: int = 0    # due templates found, created or not

    def to_dict(self) -> dict:
        return {
            "expensesCreated": self.expenses_created,
            "incomesCreated": self.incomes_created,
            "totalProcessed": self.total_processed,
        }
