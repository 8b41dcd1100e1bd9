from django.contrib import admin
from finance.models import InsuranceProviderModel, BillingModel, BillingServiceModel, BillPaymentModel

admin.site.register(InsuranceProviderModel)
admin.site.register(BillingModel)
admin.site.register(BillingServiceModel)
admin.site.register(BillPaymentModel)
