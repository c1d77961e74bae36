"""
Project Service

Final projects for finished batches: assignment, submissions, grading,
status changes and completion. Every write that touches a submission or a
grade ends with ``recompute_project`` so ranks and analytics always match
the active submission set.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from cdc_admin.core.clock import Clock, get_clock
from cdc_admin.core.database import unique_write
from cdc_admin.core.exceptions import (
    AuthorizationError, ConflictError, DuplicateError, ResourceNotFoundError, ValidationError,
)
from cdc_admin.core.logging_config import logger
from cdc_admin.models.attendance import Attendance, AttendanceStatus
from cdc_admin.models.batch import Batch
from cdc_admin.models.course import Course
from cdc_admin.models.project import (
    ACTIVE_PROJECT_STATUSES, Project, ProjectStatus, ProjectSubmission, SubmissionStatus,
)
from cdc_admin.models.student import Student
from cdc_admin.schemas.project import (
    CompleteRequest, GradeRequest, ProjectCreate, ProjectResponse, ProjectUpdate, SubmissionCreate,
)
from cdc_admin.services import grading
from cdc_admin.services.authorization import (
    Principal, require, require_found, require_staff, can_write_project, can_grade_submission,
    can_submit_project,
)
from cdc_admin.services.project_analytics_service import recompute_project
from cdc_admin.services.submission_storage import SubmissionStorage
from cdc_admin.utils.rounding import percentage
from cdc_admin.utils.serialization import to_dict

# Fields that stay editable once students have submitted
EDITABLE_AFTER_SUBMISSION = {"instructions", "resources", "status"}

# Manual transitions through the status endpoint; grading has its own operation
STATUS_TRANSITIONS = {
    SubmissionStatus.SUBMITTED: {SubmissionStatus.UNDER_REVIEW},
    SubmissionStatus.GRADED: {SubmissionStatus.RETURNED},
    SubmissionStatus.RETURNED: {SubmissionStatus.RESUBMITTED},
    SubmissionStatus.RESUBMITTED: {SubmissionStatus.SUBMITTED},
}

GRADABLE_STATUSES = {
    SubmissionStatus.SUBMITTED,
    SubmissionStatus.UNDER_REVIEW,
    SubmissionStatus.RESUBMITTED,
    SubmissionStatus.GRADED,
}

AUTO_GRADE_FEEDBACK = "Auto-graded during project completion"

SUBMISSION_SORT_FIELDS = {
    "submittedDate": ProjectSubmission.submitted_date,
    "submitted_date": ProjectSubmission.submitted_date,
    "finalScore": ProjectSubmission.final_score,
    "final_score": ProjectSubmission.final_score,
    "score": ProjectSubmission.score,
    "rank": ProjectSubmission.rank,
}


def submission_to_dict(submission: ProjectSubmission, **extra: Any) -> Dict[str, Any]:
    data = {
        "id": submission.id,
        "project_id": submission.project_id,
        "student_id": submission.student_id,
        "batch_id": submission.batch_id,
        "submitted_date": submission.submitted_date,
        "files": [
            {k: v for k, v in f.items() if k != "path"} for f in (submission.files or [])
        ],
        "description": submission.description,
        "notes": submission.notes,
        "score": submission.score,
        "feedback": submission.feedback,
        "graded_by_id": submission.graded_by_id,
        "graded_date": submission.graded_date,
        "reviewed_by_id": submission.reviewed_by_id,
        "reviewed_date": submission.reviewed_date,
        "status": submission.status,
        "submission_timing": submission.submission_timing,
        "days_from_deadline": submission.days_from_deadline,
        "attendance_score": submission.attendance_score,
        "final_score": submission.final_score,
        "rank": submission.rank,
        "version": submission.version,
        "is_active": submission.is_active,
        "performance_grade": grading.letter_grade(submission.final_score),
        "timing_analysis": grading.timing_analysis(submission.days_from_deadline),
        "created_at": submission.created_at,
    }
    data.update(extra)
    return data


class ProjectService:
    """Projects, submissions, grading and completion"""

    def __init__(
        self,
        db: AsyncSession,
        clock: Optional[Clock] = None,
        storage: Optional[SubmissionStorage] = None,
    ):
        self.db = db
        self.clock = clock or get_clock()
        self.storage = storage or SubmissionStorage()

    # =====================================================
    # LOOKUPS
    # =====================================================

    async def _project_and_batch(self, project_id: str) -> Tuple[Optional[Project], Optional[Batch]]:
        project = await self.db.get(Project, project_id)
        batch = await self.db.get(Batch, project.batch_id) if project else None
        return project, batch

    async def _writable_project(self, principal: Principal, project_id: str) -> Tuple[Project, Batch]:
        project, batch = await self._project_and_batch(project_id)
        require_found(principal, project, "Project", project_id)
        require(can_write_project(principal, project, batch), "Not authorized to manage this project")
        return project, batch

    async def _gradable_submission(
        self, principal: Principal, submission_id: str
    ) -> Tuple[ProjectSubmission, Project]:
        submission = await self.db.get(ProjectSubmission, submission_id)
        if submission is not None and not submission.is_active:
            submission = None
        project, batch = await self._project_and_batch(submission.project_id) if submission else (None, None)
        require_found(principal, project, "Submission", submission_id)
        require(can_grade_submission(principal, project, batch), "Not authorized to grade this submission")
        return submission, project

    async def _submission_count(self, project_id: str) -> int:
        return (await self.db.execute(
            select(func.count(ProjectSubmission.id))
            .where(ProjectSubmission.project_id == project_id, ProjectSubmission.is_active.is_(True))
        )).scalar() or 0

    async def _has_active_project(self, batch_id: str, exclude_id: Optional[str] = None) -> bool:
        query = select(Project.id).where(
            Project.batch_id == batch_id,
            Project.is_active.is_(True),
            Project.status.in_(ACTIVE_PROJECT_STATUSES),
        )
        if exclude_id:
            query = query.where(Project.id != exclude_id)
        return (await self.db.execute(query)).first() is not None

    async def _project_dict(self, project: Project, **extra: Any) -> Dict[str, Any]:
        batch = await self.db.get(Batch, project.batch_id)
        course = await self.db.get(Course, project.course_id)
        return to_dict(
            ProjectResponse, project,
            batch_name=batch.name if batch else None,
            course_name=course.name if course else None,
            **extra,
        )

    # =====================================================
    # PROJECTS
    # =====================================================

    async def create_project(self, principal: Principal, data: ProjectCreate) -> Dict[str, Any]:
        require_staff(principal)
        batch = require_found(principal, await self.db.get(Batch, data.batch_id), "Batch", data.batch_id)
        if not principal.is_admin and str(batch.created_by_id) != principal.user_id:
            raise AuthorizationError("Not authorized to assign projects to this batch")

        if not batch.is_finished:
            raise ConflictError("Projects can only be assigned to finished batches", batch_id=batch.id)
        if await self._has_active_project(batch.id):
            raise ConflictError("This batch already has an active project", batch_id=batch.id)

        course_id = data.course_id or batch.course_id
        if not await self.db.get(Course, course_id):
            raise ResourceNotFoundError("Course", course_id)

        assigned = self.clock.to_local_datetime(data.assigned_date) if data.assigned_date else self.clock.now()
        deadline = self.clock.to_local_datetime(data.deadline_date)
        if deadline <= assigned:
            raise ValidationError("Deadline must be after the assigned date", field="deadline_date")

        project = Project(
            title=data.title,
            description=data.description,
            batch_id=batch.id,
            course_id=course_id,
            assigned_date=assigned,
            deadline_date=deadline,
            requirements=[r.model_dump(mode="json") for r in data.requirements],
            deliverables=[d.model_dump(mode="json") for d in data.deliverables],
            resources=[r.model_dump(mode="json") for r in data.resources],
            instructions=data.instructions,
            max_score=data.max_score,
            weight_project_score=data.weightage.project_score,
            weight_attendance_score=data.weightage.attendance_score,
            weight_submission_timing=data.weightage.submission_timing,
            status=data.status,
            assigned_by_id=principal.user_id,
            **self.clock.timestamps(),
        )
        self.db.add(project)
        await self.db.flush()
        await recompute_project(self.db, project, self.clock)

        logger.log_domain_event("Projects", "project_created", project_id=project.id, batch_id=batch.id)
        return await self._project_dict(project)

    async def list_projects(
        self,
        principal: Principal,
        status: Optional[ProjectStatus] = None,
        batch_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        query = select(Project).join(Batch, Batch.id == Project.batch_id).where(Project.is_active.is_(True))
        if principal.is_student:
            own = await self.db.get(Student, principal.student_record_id) if principal.student_record_id else None
            query = query.where(Project.batch_id == (own.batch_id if own else None))
        elif not principal.is_admin:
            query = query.where(
                (Batch.created_by_id == principal.user_id) | (Project.assigned_by_id == principal.user_id)
            )
        if status:
            query = query.where(Project.status == status)
        if batch_id:
            query = query.where(Project.batch_id == batch_id)

        projects = (await self.db.execute(query.order_by(Project.created_at.desc()))).scalars().all()
        return [
            await self._project_dict(p, submission_count=await self._submission_count(p.id))
            for p in projects
        ]

    async def get_project(self, principal: Principal, project_id: str) -> Dict[str, Any]:
        project, batch = await self._project_and_batch(project_id)
        if principal.is_student:
            own = await self.db.get(Student, principal.student_record_id) if principal.student_record_id else None
            require_found(principal, project if own and project and own.batch_id == project.batch_id else None, "Project")
        else:
            require_found(principal, project, "Project", project_id)
            require(can_write_project(principal, project, batch), "Not authorized to view this project")
        return await self._project_dict(project, submission_count=await self._submission_count(project_id))

    async def update_project(self, principal: Principal, project_id: str, data: ProjectUpdate) -> Dict[str, Any]:
        project, _ = await self._writable_project(principal, project_id)
        changes = data.model_dump(exclude_unset=True)
        changes = {k: v for k, v in changes.items() if v is not None}

        if await self._submission_count(project_id):
            locked = set(changes) - EDITABLE_AFTER_SUBMISSION
            if locked:
                raise ValidationError(
                    "Only instructions, resources and status can be changed after submissions exist",
                    field=sorted(locked)[0],
                )

        assigned = self.clock.to_local_datetime(changes["assigned_date"]) if "assigned_date" in changes else project.assigned_date
        deadline = self.clock.to_local_datetime(changes["deadline_date"]) if "deadline_date" in changes else project.deadline_date
        if deadline <= assigned:
            raise ValidationError("Deadline must be after the assigned date", field="deadline_date")

        new_status = changes.get("status")
        if (
            new_status in ACTIVE_PROJECT_STATUSES
            and project.status not in ACTIVE_PROJECT_STATUSES
            and await self._has_active_project(project.batch_id, exclude_id=project.id)
        ):
            raise ConflictError("This batch already has an active project", batch_id=project.batch_id)

        if "weightage" in changes:
            weightage = changes.pop("weightage")
            project.weight_project_score = weightage["project_score"]
            project.weight_attendance_score = weightage["attendance_score"]
            project.weight_submission_timing = weightage["submission_timing"]
        for key in ("requirements", "deliverables", "resources"):
            if key in changes:
                changes[key] = [item.model_dump(mode="json") for item in getattr(data, key)]
        changes["assigned_date"] = assigned
        changes["deadline_date"] = deadline

        for field, value in changes.items():
            setattr(project, field, value)
        await self.db.flush()

        logger.log_domain_event("Projects", "project_updated", project_id=project_id)
        return await self._project_dict(project)

    async def delete_project(self, principal: Principal, project_id: str) -> Dict[str, Any]:
        """Teachers may delete only unsubmitted projects; admins deactivate the project and its submissions"""
        project, _ = await self._writable_project(principal, project_id)
        submissions = await self._submission_count(project_id)

        if not principal.is_admin and submissions:
            raise ConflictError("Cannot delete a project that already has submissions", submissions=submissions)

        result = await self.db.execute(
            select(ProjectSubmission).where(ProjectSubmission.project_id == project_id, ProjectSubmission.is_active.is_(True))
        )
        for submission in result.scalars().all():
            submission.is_active = False
        project.is_active = False
        await self.db.flush()
        await recompute_project(self.db, project, self.clock)

        logger.log_domain_event("Projects", "project_deleted", project_id=project_id, submissions_cancelled=submissions)
        return {"message": "Project deleted successfully", "submissions_cancelled": submissions}

    async def finished_batches(self, principal: Principal) -> Dict[str, Any]:
        """Finished batches still waiting for a project, and those that already have one"""
        require_staff(principal)
        query = select(Batch).where(Batch.is_finished.is_(True))
        if not principal.is_admin:
            query = query.where(Batch.created_by_id == principal.user_id)
        batches = (await self.db.execute(query.order_by(Batch.end_date.desc()))).scalars().all()

        available, taken = [], []
        for batch in batches:
            course = await self.db.get(Course, batch.course_id)
            count = (await self.db.execute(
                select(func.count(Student.id)).where(Student.batch_id == batch.id)
            )).scalar() or 0
            row = {
                "id": batch.id,
                "name": batch.name,
                "course_id": batch.course_id,
                "course_name": course.name if course else None,
                "end_date": batch.end_date,
                "student_count": count,
            }
            (taken if await self._has_active_project(batch.id) else available).append(row)

        return {
            "finished_batches": available,
            "active_batches": taken,
            "message": f"{len(available)} finished batches available for project assignment",
        }

    async def dashboard(self, principal: Principal) -> Dict[str, Any]:
        require_staff(principal)
        query = select(Project).join(Batch, Batch.id == Project.batch_id).where(Project.is_active.is_(True))
        if not principal.is_admin:
            query = query.where(
                (Batch.created_by_id == principal.user_id) | (Project.assigned_by_id == principal.user_id)
            )
        projects = (await self.db.execute(query)).scalars().all()
        project_ids = [p.id for p in projects]

        by_status = {status.value: 0 for status in ProjectStatus}
        for p in projects:
            by_status[ProjectStatus(p.status).value] += 1

        pending_grading = 0
        recent: List[Dict[str, Any]] = []
        if project_ids:
            pending_grading = (await self.db.execute(
                select(func.count(ProjectSubmission.id)).where(
                    ProjectSubmission.project_id.in_(project_ids),
                    ProjectSubmission.is_active.is_(True),
                    ProjectSubmission.score.is_(None),
                )
            )).scalar() or 0
            result = await self.db.execute(
                select(ProjectSubmission, Student.name, Project.title)
                .join(Student, Student.id == ProjectSubmission.student_id)
                .join(Project, Project.id == ProjectSubmission.project_id)
                .where(ProjectSubmission.project_id.in_(project_ids), ProjectSubmission.is_active.is_(True))
                .order_by(ProjectSubmission.submitted_date.desc())
                .limit(5)
            )
            recent = [
                submission_to_dict(s, student_name=name, project_title=title)
                for s, name, title in result.all()
            ]

        return {
            "total_projects": len(projects),
            "by_status": by_status,
            "pending_grading": pending_grading,
            "recent_submissions": recent,
        }

    # =====================================================
    # SUBMISSIONS
    # =====================================================

    async def _attendance_score(self, student_id: str, batch_id: str) -> int:
        statuses = (await self.db.execute(
            select(Attendance.status).where(Attendance.student_id == student_id, Attendance.batch_id == batch_id)
        )).scalars().all()
        present = sum(1 for s in statuses if s == AttendanceStatus.PRESENT)
        return grading.attendance_score(present, len(statuses))

    async def submit(
        self,
        principal: Principal,
        project_id: str,
        data: SubmissionCreate,
        uploads: Sequence[Any] = (),
    ) -> Dict[str, Any]:
        project = await self.db.get(Project, project_id)
        if not project or not project.is_active:
            raise ResourceNotFoundError("Project", project_id)
        if project.status not in (ProjectStatus.ASSIGNED, ProjectStatus.IN_PROGRESS):
            raise ConflictError("This project is not accepting submissions", status=ProjectStatus(project.status).value)

        if principal.is_student:
            own_id = principal.student_record_id or principal.user_id
            if data.student_id and data.student_id != own_id:
                raise AuthorizationError("Students can only submit their own work")
            student_id = own_id
        else:
            if not data.student_id:
                raise ValidationError("Student ID is required when submitting on behalf of a student", field="student_id")
            student_id = data.student_id

        student = await self.db.get(Student, student_id)
        if not student:
            raise ResourceNotFoundError("Student", student_id)
        if student.batch_id != project.batch_id:
            raise ValidationError("Student is not in this project's batch", field="student_id")
        require(can_submit_project(principal, student, project), "Not authorized to submit for this project")
        if not principal.is_admin and not principal.is_student:
            batch = await self.db.get(Batch, project.batch_id)
            require(can_write_project(principal, project, batch), "Not authorized to submit for this project")

        existing = (await self.db.execute(
            select(ProjectSubmission.id).where(
                ProjectSubmission.project_id == project_id,
                ProjectSubmission.student_id == student.id,
                ProjectSubmission.is_active.is_(True),
            )
        )).first()
        if existing:
            raise DuplicateError("Project already submitted", field="student_id")

        submitted = self.clock.to_local_datetime(data.submission_date) if data.submission_date else self.clock.now()
        days = grading.days_from_deadline(project.deadline_date, submitted)
        files = await self.storage.save_all(project.id, list(uploads)) if uploads else []

        submission = ProjectSubmission(
            project_id=project.id,
            student_id=student.id,
            batch_id=project.batch_id,
            submitted_date=submitted,
            files=files,
            description=data.description,
            notes=data.notes,
            status=SubmissionStatus.SUBMITTED,
            submission_timing=grading.classify_timing(days),
            days_from_deadline=days,
            attendance_score=await self._attendance_score(student.id, project.batch_id),
            **self.clock.timestamps(),
        )
        try:
            async with unique_write(self.db, lambda exc: DuplicateError("Project already submitted", field="student_id")):
                self.db.add(submission)
        except DuplicateError:
            await self.storage.remove(files)
            raise

        await recompute_project(self.db, project, self.clock)
        logger.log_domain_event(
            "Projects", "submission_created", project_id=project.id, student_id=student.id,
            timing=submission.submission_timing.value, days_from_deadline=days,
        )
        return submission_to_dict(submission, student_name=student.name)

    async def list_submissions(
        self,
        principal: Principal,
        project_id: str,
        status: Optional[SubmissionStatus] = None,
        sort_by: str = "submittedDate",
        order: str = "desc",
    ) -> Dict[str, Any]:
        project, _ = await self._writable_project(principal, project_id)
        column = SUBMISSION_SORT_FIELDS.get(sort_by, ProjectSubmission.submitted_date)
        query = (
            select(ProjectSubmission, Student.name, Student.roll_no)
            .join(Student, Student.id == ProjectSubmission.student_id)
            .where(ProjectSubmission.project_id == project_id, ProjectSubmission.is_active.is_(True))
            .order_by(column.asc() if order == "asc" else column.desc(), ProjectSubmission.created_at)
        )
        if status:
            query = query.where(ProjectSubmission.status == status)

        rows = (await self.db.execute(query)).all()
        return {
            "project": await self._project_dict(project),
            "submissions": [
                submission_to_dict(s, student_name=name, student_roll_no=roll) for s, name, roll in rows
            ],
            "total": len(rows),
        }

    async def all_submissions(self, principal: Principal, status: Optional[SubmissionStatus] = None) -> Dict[str, Any]:
        require_staff(principal)
        query = (
            select(ProjectSubmission, Student.name, Project.title)
            .join(Student, Student.id == ProjectSubmission.student_id)
            .join(Project, Project.id == ProjectSubmission.project_id)
            .join(Batch, Batch.id == Project.batch_id)
            .where(ProjectSubmission.is_active.is_(True))
            .order_by(ProjectSubmission.submitted_date.desc())
        )
        if not principal.is_admin:
            query = query.where(
                (Batch.created_by_id == principal.user_id) | (Project.assigned_by_id == principal.user_id)
            )
        rows = (await self.db.execute(query)).all()

        submissions = [
            submission_to_dict(s, student_name=name, project_title=title) for s, name, title in rows
        ]
        statuses = [SubmissionStatus(s.status) for s, _, _ in rows]
        if status:
            submissions = [s for s in submissions if SubmissionStatus(s["status"]) == status]
        return {
            "submissions": submissions,
            "stats": {
                "total": len(statuses),
                "pending": statuses.count(SubmissionStatus.SUBMITTED),
                "graded": statuses.count(SubmissionStatus.GRADED),
                "returned": statuses.count(SubmissionStatus.RETURNED),
                "under_review": statuses.count(SubmissionStatus.UNDER_REVIEW),
            },
        }

    async def get_submission(self, principal: Principal, submission_id: str) -> Dict[str, Any]:
        submission = await self.db.get(ProjectSubmission, submission_id)
        if principal.is_student:
            own_id = principal.student_record_id or principal.user_id
            require_found(principal, submission if submission and submission.student_id == own_id else None, "Submission")
        else:
            submission, _ = await self._gradable_submission(principal, submission_id)
        student = await self.db.get(Student, submission.student_id)
        return submission_to_dict(submission, student_name=student.name if student else None)

    async def update_status(
        self,
        principal: Principal,
        submission_id: str,
        status: SubmissionStatus,
        feedback: Optional[str] = None,
    ) -> Dict[str, Any]:
        submission, project = await self._gradable_submission(principal, submission_id)
        current = SubmissionStatus(submission.status)
        status = SubmissionStatus(status)
        if status not in STATUS_TRANSITIONS.get(current, set()):
            raise ConflictError(
                f"Cannot change submission status from {current.value} to {status.value}",
                current=current.value, requested=status.value,
            )

        now = self.clock.now()
        submission.status = status
        if feedback is not None:
            submission.feedback = feedback
        if status == SubmissionStatus.UNDER_REVIEW:
            submission.reviewed_by_id = principal.user_id
            submission.reviewed_date = now
        elif status == SubmissionStatus.RESUBMITTED:
            # The reworked submission is graded afresh
            submission.score = None
            submission.final_score = None
            submission.graded_by_id = None
            submission.graded_date = None
            submission.version = (submission.version or 1) + 1
        elif status == SubmissionStatus.SUBMITTED:
            submission.submitted_date = now
            submission.days_from_deadline = grading.days_from_deadline(project.deadline_date, now)
            submission.submission_timing = grading.classify_timing(submission.days_from_deadline)

        await self.db.flush()
        await recompute_project(self.db, project, self.clock)
        logger.log_domain_event("Projects", "submission_status_changed", submission_id=submission.id, status=status.value)
        return submission_to_dict(submission)

    def _apply_grade(
        self, submission: ProjectSubmission, project: Project, score: float, grader_id: str,
        feedback: Optional[str] = None,
    ) -> None:
        submission.score = score
        submission.final_score = grading.final_score(
            score,
            project.max_score,
            submission.attendance_score or 0,
            submission.submission_timing,
            submission.days_from_deadline,
            project.weightage,
        )
        submission.status = SubmissionStatus.GRADED
        submission.graded_by_id = grader_id
        submission.graded_date = self.clock.now()
        if feedback is not None:
            submission.feedback = feedback

    async def grade_submission(self, principal: Principal, submission_id: str, data: GradeRequest) -> Dict[str, Any]:
        submission, project = await self._gradable_submission(principal, submission_id)
        if SubmissionStatus(submission.status) not in GRADABLE_STATUSES:
            raise ConflictError(
                f"Cannot grade a submission with status {SubmissionStatus(submission.status).value}",
                status=SubmissionStatus(submission.status).value,
            )
        if data.score > project.max_score:
            raise ValidationError(f"Score must be between 0 and {project.max_score}", field="score")

        self._apply_grade(submission, project, data.score, principal.user_id, data.feedback)
        await self.db.flush()
        await recompute_project(self.db, project, self.clock)

        logger.log_domain_event(
            "Projects", "submission_graded", submission_id=submission.id,
            score=submission.score, final_score=submission.final_score, rank=submission.rank,
        )
        return submission_to_dict(submission)

    async def delete_submission(self, principal: Principal, submission_id: str) -> Dict[str, Any]:
        submission, project = await self._gradable_submission(principal, submission_id)
        submission.is_active = False
        submission.rank = None
        await self.db.flush()
        await recompute_project(self.db, project, self.clock)

        logger.log_domain_event("Projects", "submission_deleted", submission_id=submission_id)
        return {"message": "Submission deleted successfully"}

    async def resolve_download(self, principal: Principal, submission_id: str, file_name: str) -> Tuple[Any, Dict[str, Any]]:
        submission = await self.db.get(ProjectSubmission, submission_id)
        if principal.is_student:
            own_id = principal.student_record_id or principal.user_id
            require_found(principal, submission if submission and submission.student_id == own_id else None, "Submission")
        else:
            submission, _ = await self._gradable_submission(principal, submission_id)

        record = next((f for f in submission.files or [] if f.get("file_name") == file_name), None)
        if record is None:
            raise ResourceNotFoundError("File", file_name)
        return self.storage.resolve(record), record

    # =====================================================
    # COMPLETION
    # =====================================================

    async def _completion_counts(self, project: Project) -> Dict[str, int]:
        submissions = [
            s for s in (await self.db.execute(
                select(ProjectSubmission)
                .where(ProjectSubmission.project_id == project.id, ProjectSubmission.is_active.is_(True))
            )).scalars().all()
        ]
        total_students = (await self.db.execute(
            select(func.count(Student.id)).where(Student.batch_id == project.batch_id, Student.is_active.is_(True))
        )).scalar() or 0
        graded = sum(1 for s in submissions if s.score is not None)
        return {
            "total_students": total_students,
            "total_submissions": len(submissions),
            "graded_submissions": graded,
            "pending_submissions": len(submissions) - graded,
            "under_review_submissions": sum(
                1 for s in submissions if SubmissionStatus(s.status) == SubmissionStatus.UNDER_REVIEW
            ),
            "submission_rate": percentage(len(submissions), total_students),
            "grading_rate": percentage(graded, len(submissions)),
        }

    async def completion_status(self, principal: Principal, project_id: str) -> Dict[str, Any]:
        project, _ = await self._writable_project(principal, project_id)
        stats = await self._completion_counts(project)
        status = ProjectStatus(project.status)
        criteria = {
            "has_submissions": stats["total_submissions"] > 0,
            "all_submitted": stats["total_submissions"] >= stats["total_students"],
            "all_graded": stats["pending_submissions"] == 0,
            "not_completed": status not in (ProjectStatus.COMPLETED, ProjectStatus.ARCHIVED),
        }
        return {
            "project": {
                "id": project.id,
                "title": project.title,
                "status": status,
                "deadline_date": project.deadline_date,
                "completed_date": project.completed_date,
            },
            "can_complete": criteria["has_submissions"] and criteria["all_graded"] and criteria["not_completed"],
            "criteria": criteria,
            "stats": stats,
        }

    async def complete_project(self, principal: Principal, project_id: str, data: CompleteRequest) -> Dict[str, Any]:
        """
        Mark a project completed.

        Ungraded submissions block completion unless ``force_complete`` is set,
        in which case each is graded at 80% of the max score first.
        """
        project, _ = await self._writable_project(principal, project_id)
        status = ProjectStatus(project.status)
        if status in (ProjectStatus.COMPLETED, ProjectStatus.ARCHIVED):
            raise ConflictError(f"Project is already {status.value}", status=status.value)

        submissions = await self.db.execute(
            select(ProjectSubmission)
            .where(ProjectSubmission.project_id == project_id, ProjectSubmission.is_active.is_(True))
            .order_by(ProjectSubmission.created_at, ProjectSubmission.id)
        )
        submissions = list(submissions.scalars().all())
        if not submissions:
            raise ConflictError("Cannot complete a project with no submissions")

        ungraded = [s for s in submissions if s.score is None]
        if ungraded and not data.force_complete:
            raise ConflictError(
                f"{len(ungraded)} submissions are not graded yet. Grade them or force completion.",
                pending=len(ungraded),
            )

        auto_score = grading.auto_grade_score(project.max_score)
        for submission in ungraded:
            self._apply_grade(submission, project, auto_score, principal.user_id, AUTO_GRADE_FEEDBACK)

        project.status = ProjectStatus.COMPLETED
        project.completed_date = self.clock.now()
        project.completed_by_id = principal.user_id
        if data.completion_notes:
            project.completion_notes = data.completion_notes
        await self.db.flush()
        await recompute_project(self.db, project, self.clock)

        logger.log_domain_event(
            "Projects", "project_completed", project_id=project_id,
            auto_graded=len(ungraded), forced=data.force_complete,
        )
        graded = sum(1 for s in submissions if s.score is not None)
        return {
            "message": "Project marked as completed successfully",
            "project": await self._project_dict(project),
            "statistics": {
                "total_submissions": len(submissions),
                "graded_submissions": graded,
                "auto_graded_submissions": len(ungraded),
                "completion_rate": percentage(graded, len(submissions)),
            },
        }

    # =====================================================
    # STUDENT VIEWS
    # =====================================================

    async def student_projects(self, principal: Principal, student_id: str) -> List[Dict[str, Any]]:
        student = await self.db.get(Student, student_id)
        if principal.is_student:
            own_id = principal.student_record_id or principal.user_id
            student = require_found(principal, student if student and student.id == own_id else None, "Student")
        elif not student:
            raise ResourceNotFoundError("Student", student_id)

        projects = (await self.db.execute(
            select(Project)
            .where(Project.batch_id == student.batch_id, Project.is_active.is_(True))
            .order_by(Project.deadline_date.desc())
        )).scalars().all()
        submissions = {
            s.project_id: s for s in (await self.db.execute(
                select(ProjectSubmission).where(
                    ProjectSubmission.student_id == student.id, ProjectSubmission.is_active.is_(True)
                )
            )).scalars().all()
        }

        rows = []
        for project in projects:
            submission = submissions.get(project.id)
            rows.append(await self._project_dict(
                project,
                has_submitted=submission is not None,
                submission_status=submission.status if submission else None,
                submission=submission_to_dict(submission) if submission else None,
            ))
        return rows

    async def my_projects(self, principal: Principal) -> List[Dict[str, Any]]:
        if not principal.is_student:
            raise AuthorizationError("Only students have personal projects")
        return await self.student_projects(principal, principal.student_record_id or principal.user_id)
