import csv
from decimal import Decimal

from lending.models import Borrower, Loan, LoanApplication, Savings
from scripts.etl.quickcredit.etl import DEFAULT_FILE_PREFIX


def make_borrower(borrower_id='B001', first='Jane', last='Doe', phone='+256700000001', **extra):
    return Borrower.objects.create(
        borrower_id=borrower_id, first_name=first, last_name=last, phone=phone, **extra
    )


def make_application(borrower, application_id='APP001', amount='1000000', term=12, **extra):
    return LoanApplication.objects.create(
        application_id=application_id,
        borrower=borrower,
        full_name=borrower.full_name,
        requested_amount=Decimal(amount),
        term_months=term,
        **extra,
    )


def make_loan(borrower, loan_id='LN001', principal='1000000', **extra):
    values = dict(
        interest_rate=Decimal('15'),
        term_months=12,
        total_interest=Decimal('150000'),
        total_amount=Decimal(principal) + Decimal('150000'),
        monthly_payment=Decimal('95833.33'),
        outstanding_balance=Decimal(principal) + Decimal('150000'),
        status=Loan.Status.ACTIVE,
    )
    values.update(extra)
    return Loan.objects.create(loan_id=loan_id, borrower=borrower, principal=Decimal(principal), **values)


def make_savings(borrower=None, savings_id='SAV001', balance='0', **extra):
    return Savings.objects.create(savings_id=savings_id, borrower=borrower, balance=Decimal(balance), **extra)


def write_csv(directory, entity, header, rows):
    """Write ``<prefix><entity>.csv`` the way the spreadsheet exports are named."""
    path = directory / f'{DEFAULT_FILE_PREFIX}{entity}.csv'
    with path.open('w', newline='', encoding='utf-8') as f:
        w = csv.writer(f)
        w.writerow(header)
        w.writerows(rows)
    return path


def write_export_set(directory):
    """A small but complete set of QuickCredit exports."""
    write_csv(directory, 'Borrowers', [
        'Borrower ID', 'Name', 'Phone Number', 'Email Address', 'Gender', 'Date of Birth',
        'National ID / Passport', 'District', 'Monthly Income', 'Credit Rating',
    ], [
        ['B001', 'Jane Doe', '0772123456', 'jane@example.com', 'F', '15/03/1990', 'CM123', 'Kampala', '1,200,000', 'Good'],
        ['B002', 'Sam Okello', '+256 772 123 456', '', 'M', '1985-07-01', 'CM123', 'Gulu', '', ''],
        ['B003', 'Mary Akello', 'not-a-phone', '', 'F', '', '', 'Mbale', '', 'Excellent'],
    ])
    write_csv(directory, 'Loans', [
        'Loan ID', 'Customer Name', 'Amount', 'Interest Rate', 'Term', 'Status', 'Origination Date',
        'Due Date', 'Outstanding Balance', 'Purpose',
    ], [
        ['LN001', 'jane doe', '1,000,000', '15', '12', 'Active', '2024-01-10', '2024-02-10', '800,000', 'Business'],
        ['LN002', 'Unknown Person', '500000', '', '', '', '', '', '', ''],
    ])
    write_csv(directory, 'Repayments', [
        'Receipt Number', 'Loan ID', 'Amount', 'Payment Date', 'Payment Method', 'Transaction ID', 'Month',
    ], [
        ['RCP1', 'LN001', '100000', '2024-02-10', 'MOBILE_MONEY', 'TX1', 'February'],
        ['RCP2', 'LN999', '5000', '2024-02-10', '', '', ''],
    ])
    write_csv(directory, 'Savings', ['Savings ID', 'Borrower ID', 'Balance', 'Interest Rate', 'Opening Date'], [
        ['SAV001', 'B002', '50,000', '', '01/02/2023'],
        ['SAV002', 'ZZZ', '0', '6', ''],
    ])
    write_csv(directory, 'Deposits', ['Deposit ID', 'Account ID', 'Amount', 'Date', 'Method'], [
        ['DEP1', 'SAV001', '30000', '2024-01-05', 'Mobile Money'],
        ['DEP2', 'SAV001', '25000', '2024-01-06', ''],
        ['DEP3', 'SAV404', '100', '', ''],
    ])
    write_csv(directory, 'Withdrawals', ['Withdrawal ID', 'Account ID', 'Amount', 'Date', 'Method'], [
        ['WDR1', 'SAV001', '5000', '2024-01-07', ''],
    ])
    write_csv(directory, 'Expenses', ['Expense ID', 'Description', 'Amount', 'Category', 'Date'], [
        ['EXP1', 'Office rent', '300,000', 'RENT', '2024-01-31'],
        ['', '', '1000', '', ''],
    ])
    write_csv(directory, 'Applications', [
        'Application ID', 'Full Name', 'Phone', 'Email', 'Address', 'Employment Status', 'Requested Amount',
        'Purpose', 'Loan Term', 'Status', 'Application Date',
    ], [
        ['APP001', 'SAM OKELLO', '0772000001', 'sam@example.com', 'Gulu, Northern', 'Trader', '2,000,000',
         'Business', '24', 'Approved', '2024-01-02'],
        ['APP002', 'New Person', '', '', '', '', '300000', 'Education', '6', '', '2024-01-03'],
    ])
