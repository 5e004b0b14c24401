import logging

from django.db.models import Count, Q
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.models import User
from accounts.permissions import IsSchoolAdmin, IsSuperadmin
from core.exceptions import Conflict
from core.mixins import int_param

from . import services
from .models import Organization, School
from .serializers import (
    OrganizationMiniSerializer,
    OrganizationSerializer,
    ResetAdminPasswordSerializer,
    SchoolSerializer,
)

logger = logging.getLogger(__name__)

SCHOOL_SORT_FIELDS = ('name', 'created_at', 'updated_at')


class OrganizationViewSet(viewsets.ModelViewSet):
    queryset = Organization.objects.annotate(schools_count=Count('schools')).order_by('name')
    serializer_class = OrganizationSerializer
    permission_classes = [permissions.IsAuthenticated, IsSuperadmin]

    def get_queryset(self):
        qs = super().get_queryset()
        status_val = self.request.query_params.get('status')
        search = self.request.query_params.get('search')
        if status_val and status_val != 'all':
            qs = qs.filter(status=status_val)
        if search:
            qs = qs.filter(Q(name__icontains=search) | Q(contact_email__icontains=search))
        return qs

    def perform_destroy(self, instance):
        if instance.schools.exists():
            raise Conflict('Cannot delete organization while it still has schools')
        logger.info('Deleting organization %s', instance.pk)
        instance.delete()

    # ---- Public list of active organizations ----
    @action(
        detail=False,
        methods=['get'],
        permission_classes=[permissions.AllowAny],
        authentication_classes=[],
        pagination_class=None,
    )
    def active(self, request):
        qs = Organization.objects.filter(status='active').order_by('name')
        return Response(OrganizationMiniSerializer(qs, many=True).data)

    @action(detail=True, methods=['get'])
    def stats(self, request, pk=None):
        return Response(services.organization_stats(self.get_object()))


class SchoolViewSet(viewsets.ModelViewSet):
    """
    Schools are created and removed by superadmins; a school admin can read
    and edit only their own school.
    """
    queryset = School.objects.select_related('organization').all()
    serializer_class = SchoolSerializer

    def get_permissions(self):
        if self.action in ('retrieve', 'update', 'partial_update'):
            return [permissions.IsAuthenticated(), IsSchoolAdmin()]
        return [permissions.IsAuthenticated(), IsSuperadmin()]

    def get_queryset(self):
        qs = super().get_queryset()
        user = self.request.user
        if user.role != 'superadmin':
            return qs.filter(pk=user.school_id)

        params = self.request.query_params
        org_id = int_param(params, 'organization')
        status_val = params.get('status')
        search = params.get('search')
        if org_id:
            qs = qs.filter(organization_id=org_id)
        if status_val and status_val != 'all':
            qs = qs.filter(status=status_val)
        if search:
            qs = qs.filter(Q(name__icontains=search) | Q(address__icontains=search) | Q(email__icontains=search))

        sort_by = params.get('sort_by', 'name')
        if sort_by not in SCHOOL_SORT_FIELDS:
            sort_by = 'name'
        prefix = '-' if params.get('sort_order') == 'desc' else ''
        return qs.order_by(f'{prefix}{sort_by}')

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        school, credentials = services.create_school(dict(serializer.validated_data))
        return Response(
            {'school': SchoolSerializer(school).data, 'credentials': credentials},
            status=status.HTTP_201_CREATED,
        )

    def perform_destroy(self, instance):
        services.delete_school(instance)

    @action(detail=True, methods=['put'], url_path='reset-password')
    def reset_password(self, request, pk=None):
        school = self.get_object()
        serializer = ResetAdminPasswordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        admin = services.reset_admin_password(school, serializer.validated_data['new_password'])
        return Response({'ok': True, 'username': admin.username})

    @action(detail=False, methods=['get'], url_path=r'organization/(?P<org_id>\d+)', pagination_class=None)
    def by_organization(self, request, org_id=None):
        qs = School.objects.filter(organization_id=org_id).select_related('organization').order_by('name')
        return Response(SchoolSerializer(qs, many=True).data)


class SystemStatsView(APIView):
    """
    GET /api/superadmin/stats/
    Organizations, schools by status and users by role across the system.
    """
    permission_classes = [permissions.IsAuthenticated, IsSuperadmin]

    def get(self, request):
        schools_by_status = {
            row['status']: row['n']
            for row in School.objects.values('status').annotate(n=Count('id'))
        }
        users_by_role = {
            row['role']: row['n']
            for row in User.objects.values('role').annotate(n=Count('id'))
        }
        return Response({
            'organizations': Organization.objects.count(),
            'active_organizations': Organization.objects.filter(status='active').count(),
            'schools': sum(schools_by_status.values()),
            'schools_by_status': schools_by_status,
            'users_by_role': users_by_role,
        })
