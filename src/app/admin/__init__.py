"""Customer administration over the hosting platform's organizations.

Health scoring, billing metrics, renewals, trials and upgrade alerts are
pure functions over snapshots loaded by AdminRepository. The repository
also performs the console's writes: tier changes, trial extensions,
cancellations, detail edits, bulk deletes and churn logging.
"""
