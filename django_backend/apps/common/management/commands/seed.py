import random
from datetime import timedelta

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

from apps.common import mongo
from apps.projects.documents import Priority, ProjectStatus, TaskStatus, utcnow
from apps.projects.repositories import ProjectRepository, TaskRepository
from apps.users.models import Role, RoleName
from apps.users.roles import ensure_defaults

User = get_user_model()

PROJECT_NAMES = [
    'Website Redesign', 'Mobile App Launch', 'Data Warehouse Migration', 'Customer Portal',
    'Quarterly Planning', 'Security Audit', 'Onboarding Revamp', 'Billing Integration',
]

TASK_TITLES = [
    'Write design doc', 'Review pull request', 'Design mockups', 'Set up CI pipeline',
    'Fix login bug', 'Update documentation', 'Load testing', 'Prepare release notes',
    'Customer interview', 'Refactor data model', 'Configure monitoring', 'Plan sprint',
]

TAGS = ['frontend', 'backend', 'design', 'ops', 'research', 'bug', 'docs']


class Command(BaseCommand):
    help = 'Seed the database with default roles, the default organization and sample projects'

    def add_arguments(self, parser):
        parser.add_argument(
            '--admin',
            metavar='EXTERNAL_ID',
            help='Give the identity with this provider user ID the global admin role'
        )
        parser.add_argument(
            '--projects',
            type=int,
            default=0,
            help='Number of sample projects to create for the --admin identity'
        )
        parser.add_argument(
            '--tasks-per-project',
            type=int,
            default=8,
            help='Number of sample tasks per project'
        )
        parser.add_argument(
            '--flush-documents',
            action='store_true',
            help='Drop every project and task before seeding'
        )

    def handle(self, *args, **options):
        self.stdout.write('Seeding defaults...')
        roles, organization = ensure_defaults()
        self.stdout.write(f'Roles: {", ".join(role.name for role in roles)}')
        self.stdout.write(f'Default organization: {organization.slug}')

        mongo.ensure_indexes()
        if options['flush_documents']:
            mongo.drop_database()
            mongo.ensure_indexes()
            self.stdout.write('Dropped all projects and tasks')

        admin = None
        if options['admin']:
            admin = self.promote_admin(options['admin'], organization)

        if options['projects']:
            if admin is None:
                raise CommandError('--projects needs --admin to own the sample projects')
            self.create_projects(admin, organization, options['projects'], options['tasks_per_project'])

        self.stdout.write(self.style.SUCCESS('Seed data created successfully!'))

    def promote_admin(self, external_id, organization):
        admin_role = Role.objects.get(name=RoleName.ADMIN, organization__isnull=True)
        user, created = User.objects.get_or_create(
            external_id=external_id,
            defaults={'username': external_id, 'organization': organization},
        )
        user.role = admin_role
        user.save(update_fields=['role', 'updated_at'])
        self.stdout.write(f'{"Created" if created else "Promoted"} global admin {external_id}')
        return user

    def create_projects(self, owner, organization, count, tasks_per_project):
        projects, tasks = ProjectRepository(), TaskRepository()
        others = list(
            User.objects.exclude(pk=owner.pk).exclude(external_id__isnull=True).values_list('external_id', flat=True)[:20]
        )
        now = utcnow()
        total_tasks = 0

        for i in range(count):
            team = random.sample(others, min(len(others), random.randint(0, 4)))
            project = projects.create(
                {
                    'name': f'{random.choice(PROJECT_NAMES)} {i + 1}',
                    'description': 'Sample project created by the seed command',
                    'priority': random.choice(Priority.values),
                    'team_members': team,
                    'start_date': now - timedelta(days=random.randint(0, 60)),
                    'end_date': now + timedelta(days=random.randint(7, 90)),
                    'tags': random.sample(TAGS, 2),
                },
                owner.external_id,
                str(organization.pk),
            )
            projects.update(project['_id'], {
                'status': random.choice(ProjectStatus.values),
                'progress': random.randint(0, 100),
            })

            for _ in range(tasks_per_project):
                task = tasks.create(
                    {
                        'title': random.choice(TASK_TITLES),
                        'priority': random.choice(Priority.values),
                        'project_id': project['_id'],
                        'assignee_id': random.choice(team + [owner.external_id]),
                        'due_date': now + timedelta(days=random.randint(-10, 30)),
                        'estimated_hours': random.choice([1, 2, 4, 8, 16]),
                        'tags': random.sample(TAGS, 1),
                    },
                    owner.external_id,
                )
                status = random.choice(TaskStatus.values)
                tasks.update(task['_id'], {
                    'status': status,
                    'actual_hours': random.choice([None, 1, 2, 3, 5]) if status != TaskStatus.TODO else None,
                })
                total_tasks += 1

        self.stdout.write(f'Created {count} projects with {total_tasks} tasks')
