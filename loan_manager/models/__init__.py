# Automatically load all models so metadata knows them
from loan_manager.models.user_model import User
from loan_manager.models.loan_model import Loan
from loan_manager.models.repayment_model import Repayment
from loan_manager.models.transaction_model import Transaction
from loan_manager.models.settings_model import LoanSettings
from loan_manager.models.notification_model import Notification
