# students/admin.py

from django.contrib import admin
from .models import Student


@admin.register(Student)
class StudentAdmin(admin.ModelAdmin):
    list_display = ['student_number', 'get_full_name', 'course', 'year_level', 'enrollment_status']
    list_filter = ['enrollment_status', 'year_level']
    search_fields = ['student_number', 'first_name', 'last_name', 'email']
