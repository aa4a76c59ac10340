from .accounts import (create_account, deactivate_account, delete_account,
                       get_account_balance, get_account_tree, update_account)
from .reports import (get_aging, get_balance_sheet, get_cash_flow,
                      get_contact_summary, get_dashboard, get_profit_loss,
                      get_sales_report)
from .stock import adjust_stock, low_stock_products, stock_history
from .transactions import (apply_payment, create_transaction,
                           delete_transaction, get_transaction,
                           list_transactions, transition_status,
                           update_transaction)
