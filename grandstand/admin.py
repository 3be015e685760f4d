from django.contrib.admin import AdminSite
from django.shortcuts import redirect

class GrandstandAdminSite(AdminSite):
    site_header = 'Grandstand Administration'
    site_title = 'Grandstand Admin'
    index_title = 'Grandstand Dashboard'

    def index(self, request, extra_context=None):
        # Charges are what operators look at first
        return redirect('admin:monetization_monetizablecharge_changelist')

# Create an instance of the custom admin site
grandstand_admin_site = GrandstandAdminSite(name='grandstand_admin')
