# constants/station_config.py
"""
Station-wide constants for tank reconciliation and unload approval
"""

# Approval transaction must finish within this many seconds
APPROVAL_TIMEOUT_SECONDS = 15.0

# Tolerance for float comparisons on liters and money
VOLUME_EPSILON = 1e-6
BALANCE_TOLERANCE = 0.005

# Tank considered low below this fill percentage
LOW_STOCK_THRESHOLD_PERCENT = 20.0

# Journal transaction type for every unload posting
UNLOAD_TRANSACTION_TYPE = "UNLOAD"

# Prefix written to notes of a deposit-in-kind unload (display only)
DEPOSIT_IN_KIND_NOTE = "Deposit in kind from {name}."

# ============================================================================
#  ACCOUNT (COA) NAMES
# ============================================================================

INVENTORY_ACCOUNT = "Inventory {product}"
LO_ACCOUNT = "LO {product}"
TRANSIT_SHRINKAGE_ACCOUNT = "Transit Shrinkage Expense"
TRANSIT_GAIN_ACCOUNT = "Transit Gain"
DEPOSIT_ACCOUNT = "Deposit {name}"
DEPOSIT_ADJUSTMENT_ACCOUNT = "Deposit Adjustment {name}"
