"""
Shop App Forms
Payload validation for the JSON API and the admin actions
"""

from django import forms

from .exceptions import ValidationError
from .models import Order, BankAccount


def validated(form_class, data, **kwargs):
    """
    Bind ``data`` to the form and return cleaned_data

    Raises:
        ValidationError: with the first field error as message
    """
    form = form_class(data, **kwargs)
    if not form.is_valid():
        field, errors = next(iter(form.errors.items()))
        message = errors[0] if field == '__all__' else f'{field}: {errors[0]}'
        raise ValidationError(message, errors=form.errors.get_json_data())
    return form.cleaned_data


# ==========================================
# ORDER FORMS
# ==========================================

class OrderStatusUpdateForm(forms.Form):
    """Operator or seller moves an order along"""
    status = forms.ChoiceField(choices=Order.STATUS_CHOICES)


class CancelOrderForm(forms.Form):
    reason = forms.CharField(required=False, max_length=1000)


class RefundDecisionForm(forms.Form):
    """Operator approves or rejects a refund request"""
    ACTION_CHOICES = [
        ('approve', 'Approve'),
        ('reject', 'Reject'),
    ]

    action = forms.ChoiceField(choices=ACTION_CHOICES)

    def clean(self):
        cleaned_data = super().clean()
        cleaned_data['approve'] = cleaned_data.get('action') == 'approve'
        return cleaned_data


# ==========================================
# WITHDRAWAL FORMS
# ==========================================

class WithdrawalRequestForm(forms.Form):
    amount = forms.DecimalField(max_digits=12, decimal_places=2)
    account_number = forms.CharField(max_length=34)


class WithdrawalRejectForm(forms.Form):
    reason = forms.CharField(max_length=1000, strip=True)

    def clean_reason(self):
        reason = self.cleaned_data.get('reason', '')
        if not reason:
            raise forms.ValidationError('Rejection reason is required')
        return reason


class BankAccountForm(forms.ModelForm):
    """Seller registers a payout account"""

    class Meta:
        model = BankAccount
        fields = ['bank_name', 'account_holder_name', 'account_number']

    def clean_account_number(self):
        number = self.cleaned_data.get('account_number', '').replace(' ', '')
        if not number.isalnum():
            raise forms.ValidationError('Account number may only contain letters and digits')
        return number
