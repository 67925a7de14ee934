# events/admin.py

from django.contrib import admin
from .models import Event


@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    list_display = ['title', 'start_date', 'end_date', 'category', 'status', 'is_recurring', 'recurrence_display']
    list_filter = ['status', 'category', 'is_recurring']
    search_fields = ['title', 'description', 'location', 'organizer']
    prepopulated_fields = {'slug': ('title',)}
    date_hierarchy = 'start_date'

    @admin.display(description='Repeats')
    def recurrence_display(self, obj):
        return obj.get_recurrence_description()
