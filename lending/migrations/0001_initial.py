import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


def money(**kwargs):
    return models.DecimalField(max_digits=14, decimal_places=2, **kwargs)


def timestamps():
    return [
        ('created_at', models.DateTimeField(auto_now_add=True)),
        ('updated_at', models.DateTimeField(auto_now=True)),
    ]


def pk():
    return ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID'))


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Borrower',
            fields=[
                pk(),
                *timestamps(),
                ('borrower_id', models.CharField(max_length=32, unique=True)),
                ('first_name', models.CharField(max_length=128)),
                ('last_name', models.CharField(blank=True, max_length=128)),
                ('phone', models.CharField(max_length=20, unique=True)),
                ('email', models.EmailField(blank=True, max_length=254)),
                ('gender', models.CharField(blank=True, max_length=16)),
                ('date_of_birth', models.DateField(blank=True, null=True)),
                ('national_id', models.CharField(blank=True, max_length=64, null=True, unique=True)),
                ('district', models.CharField(blank=True, max_length=128)),
                ('subcounty', models.CharField(blank=True, max_length=128)),
                ('village', models.CharField(blank=True, max_length=128)),
                ('occupation', models.CharField(blank=True, max_length=128)),
                ('monthly_income', money(blank=True, null=True)),
                ('credit_rating', models.CharField(choices=[('Excellent', 'Excellent'), ('Very Good', 'Very Good'), ('Good', 'Good'), ('Fair', 'Fair'), ('Poor', 'Poor'), ('NO_CREDIT', 'No credit')], default='NO_CREDIT', max_length=16)),
                ('status', models.CharField(choices=[('ACTIVE', 'Active'), ('INACTIVE', 'Inactive'), ('BLACKLISTED', 'Blacklisted')], default='ACTIVE', max_length=16)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='borrowers_created', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['borrower_id'],
                'indexes': [
                    models.Index(fields=['status'], name='lending_borrower_status_idx'),
                    models.Index(fields=['district'], name='lending_borrower_district_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='LoanApplication',
            fields=[
                pk(),
                *timestamps(),
                ('application_id', models.CharField(max_length=32, unique=True)),
                ('full_name', models.CharField(blank=True, max_length=255)),
                ('phone', models.CharField(blank=True, max_length=32)),
                ('email', models.CharField(blank=True, max_length=255)),
                ('address', models.CharField(blank=True, max_length=255)),
                ('employment_status', models.CharField(blank=True, max_length=128)),
                ('requested_amount', money(default=0)),
                ('approved_amount', money(blank=True, null=True)),
                ('purpose', models.CharField(default='General', max_length=255)),
                ('term_months', models.PositiveIntegerField(default=12)),
                ('status', models.CharField(choices=[('PENDING', 'Pending'), ('APPROVED', 'Approved'), ('REJECTED', 'Rejected')], default='PENDING', max_length=16)),
                ('submitted_at', models.DateTimeField(blank=True, null=True)),
                ('reviewed_at', models.DateTimeField(blank=True, null=True)),
                ('rejection_reason', models.TextField(blank=True)),
                ('borrower', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='applications', to='lending.borrower')),
                ('reviewed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='applications_reviewed', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['application_id'],
                'indexes': [models.Index(fields=['status'], name='lending_app_status_idx')],
            },
        ),
        migrations.CreateModel(
            name='Loan',
            fields=[
                pk(),
                *timestamps(),
                ('loan_id', models.CharField(max_length=32, unique=True)),
                ('principal', money()),
                ('interest_rate', models.DecimalField(decimal_places=2, max_digits=5)),
                ('term_months', models.PositiveIntegerField(default=12)),
                ('total_interest', money(default=0)),
                ('total_amount', money(default=0)),
                ('monthly_payment', money(default=0)),
                ('status', models.CharField(choices=[('PENDING', 'Pending'), ('APPROVED', 'Approved'), ('DISBURSED', 'Disbursed'), ('ACTIVE', 'Active'), ('COMPLETED', 'Completed'), ('CLOSED', 'Closed'), ('DEFAULTED', 'Defaulted')], default='PENDING', max_length=16)),
                ('purpose', models.CharField(default='General', max_length=255)),
                ('disbursed_at', models.DateTimeField(blank=True, null=True)),
                ('disbursed_amount', money(blank=True, null=True)),
                ('outstanding_balance', money(default=0)),
                ('next_payment_date', models.DateField(blank=True, null=True)),
                ('next_payment_amount', money(blank=True, null=True)),
                ('application', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='loan', to='lending.loanapplication')),
                ('borrower', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='loans', to='lending.borrower')),
                ('loan_officer', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='loans_managed', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['loan_id'],
                'indexes': [
                    models.Index(fields=['status'], name='lending_loan_status_idx'),
                    models.Index(fields=['status', 'next_payment_date'], name='lending_loan_status_due_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Repayment',
            fields=[
                pk(),
                *timestamps(),
                ('receipt_number', models.CharField(max_length=64, unique=True)),
                ('amount', money()),
                ('principal_amount', money(default=0)),
                ('interest_amount', money(default=0)),
                ('payment_method', models.CharField(default='CASH', max_length=32)),
                ('transaction_id', models.CharField(blank=True, max_length=128)),
                ('status', models.CharField(choices=[('COMPLETED', 'Completed'), ('PENDING', 'Pending'), ('LATE', 'Late'), ('FAILED', 'Failed')], default='COMPLETED', max_length=16)),
                ('paid_at', models.DateTimeField()),
                ('month', models.CharField(blank=True, max_length=32)),
                ('notes', models.TextField(blank=True)),
                ('borrower', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='repayments', to='lending.borrower')),
                ('loan', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='repayments', to='lending.loan')),
            ],
            options={
                'ordering': ['-paid_at'],
                'indexes': [models.Index(fields=['paid_at'], name='lending_repayment_paid_idx')],
            },
        ),
        migrations.CreateModel(
            name='Savings',
            fields=[
                pk(),
                *timestamps(),
                ('savings_id', models.CharField(max_length=32, unique=True)),
                ('balance', money(default=0)),
                ('interest_rate', models.DecimalField(decimal_places=2, default=5, max_digits=5)),
                ('status', models.CharField(choices=[('ACTIVE', 'Active'), ('DORMANT', 'Dormant'), ('CLOSED', 'Closed')], default='ACTIVE', max_length=16)),
                ('opened_at', models.DateField(blank=True, null=True)),
                ('borrower', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='savings_accounts', to='lending.borrower')),
            ],
            options={
                'verbose_name_plural': 'savings',
                'ordering': ['savings_id'],
            },
        ),
        migrations.CreateModel(
            name='Deposit',
            fields=[
                pk(),
                *timestamps(),
                ('deposit_id', models.CharField(max_length=32, unique=True)),
                ('amount', money()),
                ('deposit_date', models.DateField()),
                ('method', models.CharField(default='Cash', max_length=32)),
                ('account', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='deposits', to='lending.savings')),
            ],
            options={'ordering': ['deposit_date', 'deposit_id']},
        ),
        migrations.CreateModel(
            name='Withdrawal',
            fields=[
                pk(),
                *timestamps(),
                ('withdrawal_id', models.CharField(max_length=32, unique=True)),
                ('amount', money()),
                ('withdrawal_date', models.DateField()),
                ('method', models.CharField(default='CASH', max_length=32)),
                ('account', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='withdrawals', to='lending.savings')),
            ],
            options={'ordering': ['withdrawal_date', 'withdrawal_id']},
        ),
        migrations.CreateModel(
            name='Expense',
            fields=[
                pk(),
                *timestamps(),
                ('expense_id', models.CharField(max_length=32, unique=True)),
                ('description', models.CharField(default='General Expense', max_length=255)),
                ('amount', money()),
                ('category', models.CharField(default='OPERATIONAL', max_length=64)),
                ('expense_date', models.DateField()),
            ],
            options={
                'ordering': ['-expense_date'],
                'indexes': [models.Index(fields=['category'], name='lending_expense_category_idx')],
            },
        ),
        migrations.CreateModel(
            name='Notification',
            fields=[
                pk(),
                *timestamps(),
                ('type', models.CharField(choices=[('PAYMENT_REMINDER', 'Payment reminder'), ('PAYMENT_RECEIVED', 'Payment received'), ('LOAN_APPROVED', 'Loan approved'), ('LOAN_DISBURSED', 'Loan disbursed'), ('SYSTEM_ALERT', 'System alert'), ('OVERDUE_NOTICE', 'Overdue notice')], max_length=32)),
                ('title', models.CharField(max_length=255)),
                ('message', models.TextField()),
                ('priority', models.CharField(default='medium', max_length=8)),
                ('channels', models.JSONField(blank=True, default=list)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('status', models.CharField(choices=[('PENDING', 'Pending'), ('SENT', 'Sent'), ('FAILED', 'Failed')], default='PENDING', max_length=16)),
                ('sent_at', models.DateTimeField(blank=True, null=True)),
                ('is_read', models.BooleanField(default=False)),
                ('read_at', models.DateTimeField(blank=True, null=True)),
                ('borrower', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to='lending.borrower')),
                ('loan', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to='lending.loan')),
                ('user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status'], name='lending_notif_status_idx'),
                    models.Index(fields=['user', 'is_read'], name='lending_notif_user_read_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ImportRun',
            fields=[
                pk(),
                *timestamps(),
                ('action', models.CharField(max_length=64)),
                ('source_dir', models.CharField(blank=True, max_length=255)),
                ('started_at', models.DateTimeField(blank=True, null=True)),
                ('finished_at', models.DateTimeField(blank=True, null=True)),
                ('stats', models.JSONField(blank=True, default=dict)),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['action', 'created_at'], name='lending_importrun_action_idx')],
            },
        ),
    ]
