"""Client-side personal finance tracker core: records, aggregates, budgets, PIN lock."""
