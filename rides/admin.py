from django.contrib import admin, messages
from import_export import resources
from import_export.admin import ImportExportModelAdmin

from .lifecycle import queue_dispatch, trip_lifecycle
from .models import Driver, Operator, Station, Trip, TripAssignment, Zone

admin.site.site_header = "TaxiFlow Dispatch Administration"
admin.site.site_title = "TaxiFlow Admin Portal"
admin.site.index_title = "Stations, drivers and trips"


# Resources for export functionality
class StationResource(resources.ModelResource):
    class Meta:
        model = Station
        fields = ('id', 'name', 'is_active', 'created_at')
        export_order = fields


class ZoneResource(resources.ModelResource):
    class Meta:
        model = Zone
        fields = ('id', 'station__name', 'name', 'color', 'geometry',
                  'center_lat', 'center_lng', 'created_at')
        export_order = fields


class DriverResource(resources.ModelResource):
    class Meta:
        model = Driver
        fields = ('id', 'user__username', 'station__name', 'full_name', 'phone',
                  'vehicle_number', 'is_online', 'is_approved', 'is_active',
                  'latitude', 'longitude', 'current_zone__name', 'location_updated_at')
        export_order = fields


class TripResource(resources.ModelResource):
    class Meta:
        model = Trip
        fields = ('id', 'station__name', 'customer_phone', 'pickup_address',
                  'destination_address', 'pickup_lat', 'pickup_lng', 'zone__name',
                  'status', 'driver__full_name', 'assigned_at', 'accepted_at',
                  'completed_at', 'created_at')
        export_order = fields


class TripAssignmentResource(resources.ModelResource):
    class Meta:
        model = TripAssignment
        fields = ('id', 'trip__id', 'driver__full_name', 'distance_meters',
                  'assigned_at', 'released_at', 'release_reason')
        export_order = fields


# Admin configurations
@admin.register(Station)
class StationAdmin(ImportExportModelAdmin):
    resource_class = StationResource
    list_display = ('name', 'is_active', 'created_at')
    list_filter = ('is_active',)
    search_fields = ('name',)


@admin.register(Zone)
class ZoneAdmin(ImportExportModelAdmin):
    resource_class = ZoneResource
    list_display = ('name', 'station', 'color', 'center_lat', 'center_lng', 'created_at')
    list_filter = ('station',)
    search_fields = ('name',)
    readonly_fields = ('center_lat', 'center_lng', 'created_at', 'updated_at')


@admin.register(Driver)
class DriverAdmin(ImportExportModelAdmin):
    resource_class = DriverResource
    list_display = ('full_name', 'station', 'vehicle_number', 'is_online',
                    'is_approved', 'is_active', 'current_zone', 'location_updated_at')
    list_filter = ('station', 'is_online', 'is_approved', 'is_active')
    search_fields = ('full_name', 'phone', 'vehicle_number', 'user__username')
    list_editable = ('is_approved', 'is_active')
    readonly_fields = ('current_zone', 'location_updated_at')
    list_per_page = 20

    fieldsets = (
        ('Driver Information', {
            'fields': ('user', 'station', 'full_name', 'phone', 'vehicle_number')
        }),
        ('Status', {
            'fields': ('is_online', 'is_approved', 'is_active')
        }),
        ('Current Location', {
            'fields': ('latitude', 'longitude', 'current_zone', 'location_updated_at')
        }),
    )

    def has_delete_permission(self, request, obj=None):
        # Deactivate instead; trips keep referencing the driver
        return False


@admin.register(Operator)
class OperatorAdmin(admin.ModelAdmin):
    list_display = ('user', 'station')
    list_filter = ('station',)
    search_fields = ('user__username',)


class TripAssignmentInline(admin.TabularInline):
    model = TripAssignment
    extra = 0
    can_delete = False
    readonly_fields = ('driver', 'distance_meters', 'assigned_at', 'released_at', 'release_reason')


@admin.register(Trip)
class TripAdmin(ImportExportModelAdmin):
    resource_class = TripResource
    list_display = ('id', 'station', 'status', 'driver', 'zone', 'pickup_address', 'created_at')
    list_filter = ('station', 'status', 'created_at')
    search_fields = ('id', 'customer_phone', 'pickup_address', 'driver__full_name')
    # Status and driver only change through the dispatch engine
    readonly_fields = ('status', 'driver', 'assigned_at', 'accepted_at', 'completed_at',
                       'created_at', 'updated_at')
    inlines = [TripAssignmentInline]
    actions = ['dispatch_selected', 'unassign_selected']
    list_per_page = 20

    @admin.action(description='Dispatch selected pending trips')
    def dispatch_selected(self, request, queryset):
        queued = 0
        for trip in queryset.filter(status=Trip.STATUS_PENDING, driver__isnull=True):
            if queue_dispatch(trip.id):
                queued += 1
        self.message_user(request, f'{queued} trips queued for dispatch', messages.SUCCESS)

    @admin.action(description='Unassign driver from selected trips')
    def unassign_selected(self, request, queryset):
        released = sum(1 for trip in queryset if trip_lifecycle.unassign(trip.id).ok)
        self.message_user(request, f'{released} trips unassigned', messages.SUCCESS)


@admin.register(TripAssignment)
class TripAssignmentAdmin(ImportExportModelAdmin):
    resource_class = TripAssignmentResource
    list_display = ('trip', 'driver', 'distance_meters', 'assigned_at', 'released_at', 'release_reason')
    list_filter = ('release_reason', 'assigned_at')
    readonly_fields = ('trip', 'driver', 'distance_meters', 'assigned_at', 'released_at', 'release_reason')
