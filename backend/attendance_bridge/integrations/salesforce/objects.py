"""
Salesforce object and field API names used by the attendance bridge.

These are the only field names, besides SchemaResolver output, that may appear
in generated SOQL.
"""

ACCOUNT_OBJECT = "Account"
ACCOUNT_NUMBER_FIELD = "AccountNumber"

# Fallbacks when the Account describe call cannot identify class/section fields
DEFAULT_CLASS_FIELD = "Class__c"
DEFAULT_SECTION_FIELD = "Section__c"

ATTENDANCE_OBJECT = "Attendance__c"
ATTENDANCE_STUDENT_FIELD = "Student__c"
ATTENDANCE_DATE_FIELD = "Date__c"
ATTENDANCE_STATUS_FIELD = "Status__c"
ATTENDANCE_ROLL_NUMBER_FIELD = "Roll_Number__c"
ATTENDANCE_CLASS_FIELD = "Class__c"
ATTENDANCE_SECTION_FIELD = "Section__c"

SESSION_OBJECT = "Attendance_Session__c"
SESSION_CLASS_FIELD = "Class__c"
SESSION_SECTION_FIELD = "Section__c"
SESSION_DATE_FIELD = "Date__c"
SESSION_TAKEN_BY_FIELD = "Taken_By__c"

CONTACT_OBJECT = "Contact"
CONTACT_MOBILE_FIELDS = ("MobilePhone", "Phone")
CONTACT_ROLE_FIELD = "Role__c"

STATUS_PRESENT = "Present"
STATUS_ABSENT = "Absent"
