"""
Project analytics.

ProjectAnalytics is a cache derived from a project's active submissions.
``recompute_project`` rebuilds ranks and the analytics row in one pass and
is called after every write that changes a submission or a grade. It is
idempotent: running it twice over the same submissions writes the same row.
"""

from typing import Any, Dict, List, Optional, Set

from sqlalchemy import select, func, delete, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cdc_admin.core.clock import Clock, get_clock
from cdc_admin.core.exceptions import ResourceNotFoundError
from cdc_admin.core.logging_config import logger
from cdc_admin.models.batch import Batch
from cdc_admin.models.project import (
    Project, ProjectAnalytics, ProjectSubmission, SubmissionTiming,
)
from cdc_admin.models.student import Student
from cdc_admin.services import grading
from cdc_admin.services.authorization import Principal, require, can_write_project
from cdc_admin.utils.rounding import percentage


async def active_submissions(db: AsyncSession, project_id: str) -> List[ProjectSubmission]:
    """Active submissions in storage order"""
    result = await db.execute(
        select(ProjectSubmission)
        .where(ProjectSubmission.project_id == project_id, ProjectSubmission.is_active.is_(True))
        .order_by(ProjectSubmission.created_at, ProjectSubmission.id)
    )
    return list(result.scalars().all())


def build_analytics(
    submissions: List[ProjectSubmission],
    total_students: int,
    student_names: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Analytics fields for a ranked submission set"""
    student_names = student_names or {}
    submitted = len(submissions)
    timing = {"early": 0, "on_time": 0, "late": 0}
    for s in submissions:
        timing[SubmissionTiming(s.submission_timing).value] += 1

    scores = [s.score for s in submissions]
    finals = [s.final_score for s in submissions]
    attendance = grading.summarize(s.attendance_score for s in submissions)

    ranked = sorted((s for s in submissions if s.rank is not None), key=lambda s: s.rank)
    top = [
        {
            "student_id": s.student_id,
            "student_name": student_names.get(s.student_id),
            "submission_id": s.id,
            "final_score": s.final_score,
            "rank": s.rank,
        }
        for s in ranked[:grading.TOP_PERFORMERS]
    ]

    return {
        "total_students": total_students,
        "submitted_count": submitted,
        "pending_count": max(0, total_students - submitted),
        "graded_count": sum(1 for s in scores if s is not None),
        "submission_stats": timing,
        "score_stats": grading.summarize(scores),
        "attendance_stats": attendance,
        "final_score_stats": grading.summarize(finals),
        "grade_distribution": grading.grade_distribution(finals),
        "top_performers": top,
        "completion_rate": percentage(submitted, total_students),
        "on_time_submission_rate": percentage(timing["early"] + timing["on_time"], submitted),
    }


async def recompute_project(db: AsyncSession, project: Project, clock: Optional[Clock] = None) -> ProjectAnalytics:
    """Re-rank the project's submissions and upsert its analytics row"""
    clock = clock or get_clock()
    submissions = await active_submissions(db, project.id)
    grading.assign_ranks(submissions)

    total_students = (await db.execute(
        select(func.count(Student.id))
        .where(Student.batch_id == project.batch_id, Student.is_active.is_(True))
    )).scalar() or 0
    names = {}
    if submissions:
        names = dict((await db.execute(
            select(Student.id, Student.name).where(Student.id.in_([s.student_id for s in submissions]))
        )).all())

    fields = build_analytics(submissions, total_students, names)
    fields["last_updated"] = clock.now()

    analytics = await _find_analytics(db, project.id)
    if analytics is None:
        analytics = ProjectAnalytics(project_id=project.id, batch_id=project.batch_id, **fields)
        try:
            async with db.begin_nested():
                db.add(analytics)
                await db.flush()
            _log_recompute(project, fields)
            return analytics
        except IntegrityError:
            # Another writer created the row first; overwrite it below
            analytics = await _find_analytics(db, project.id)
            if analytics is None:
                raise

    analytics.batch_id = project.batch_id
    for field, value in fields.items():
        setattr(analytics, field, value)
    await db.flush()
    _log_recompute(project, fields)
    return analytics


async def purge_submissions(db: AsyncSession, *criteria) -> Dict[str, Any]:
    """
    Hard-delete every submission matching any of ``criteria``.

    Returns the number deleted, the ids of the projects they belonged to and
    the stored file records so the caller can drop the blobs.
    """
    submissions = (await db.execute(
        select(ProjectSubmission).where(or_(*criteria))
    )).scalars().all()
    if not submissions:
        return {"deleted": 0, "project_ids": set(), "files": []}

    ids = [s.id for s in submissions]
    await db.execute(
        update(ProjectSubmission)
        .where(ProjectSubmission.previous_submission_id.in_(ids))
        .values(previous_submission_id=None)
    )
    await db.execute(delete(ProjectSubmission).where(ProjectSubmission.id.in_(ids)))
    return {
        "deleted": len(ids),
        "project_ids": {s.project_id for s in submissions},
        "files": [record for s in submissions for record in (s.files or [])],
    }


async def purge_batch_projects(db: AsyncSession, batch_id: str) -> Dict[str, Any]:
    """Hard-delete a batch's projects with their submissions and analytics rows"""
    project_ids = list((await db.execute(
        select(Project.id).where(Project.batch_id == batch_id)
    )).scalars().all())
    purged = await purge_submissions(
        db,
        ProjectSubmission.batch_id == batch_id,
        ProjectSubmission.project_id.in_(project_ids),
    )
    if project_ids:
        await db.execute(delete(ProjectAnalytics).where(ProjectAnalytics.project_id.in_(project_ids)))
        await db.execute(delete(Project).where(Project.id.in_(project_ids)))
    purged["projects_deleted"] = len(project_ids)
    purged["project_ids"] = purged["project_ids"] - set(project_ids)
    return purged


async def recompute_projects(db: AsyncSession, project_ids: Set[str], clock: Optional[Clock] = None) -> None:
    for project_id in sorted(project_ids):
        project = await db.get(Project, project_id)
        if project is not None:
            await recompute_project(db, project, clock)


async def _find_analytics(db: AsyncSession, project_id: str) -> Optional[ProjectAnalytics]:
    return (await db.execute(
        select(ProjectAnalytics).where(ProjectAnalytics.project_id == project_id)
    )).scalar_one_or_none()


def _log_recompute(project: Project, fields: Dict[str, Any]) -> None:
    logger.log_domain_event(
        "Projects", "analytics_recomputed", project_id=project.id,
        submitted=fields["submitted_count"], graded=fields["graded_count"],
    )


def analytics_to_dict(analytics: ProjectAnalytics) -> Dict[str, Any]:
    return {
        "id": analytics.id,
        "project_id": analytics.project_id,
        "batch_id": analytics.batch_id,
        "total_students": analytics.total_students,
        "submitted_count": analytics.submitted_count,
        "pending_count": analytics.pending_count,
        "graded_count": analytics.graded_count,
        "submission_stats": analytics.submission_stats,
        "score_stats": analytics.score_stats,
        "attendance_stats": analytics.attendance_stats,
        "final_score_stats": analytics.final_score_stats,
        "grade_distribution": analytics.grade_distribution,
        "top_performers": analytics.top_performers,
        "completion_rate": analytics.completion_rate,
        "on_time_submission_rate": analytics.on_time_submission_rate,
        "last_updated": analytics.last_updated,
    }


class ProjectAnalyticsService:
    """Read side of project analytics"""

    def __init__(self, db: AsyncSession, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or get_clock()

    async def _project_for(self, principal: Principal, project_id: str) -> Project:
        project = await self.db.get(Project, project_id)
        if not project:
            raise ResourceNotFoundError("Project", project_id)
        batch = await self.db.get(Batch, project.batch_id)
        require(can_write_project(principal, project, batch), "Not authorized to view analytics for this project")
        return project

    async def get_project_analytics(self, principal: Principal, project_id: str) -> Dict[str, Any]:
        project = await self._project_for(principal, project_id)
        analytics = await _find_analytics(self.db, project_id)
        if analytics is None:
            analytics = await recompute_project(self.db, project, self.clock)

        finals = [s.final_score for s in await active_submissions(self.db, project_id)]
        data = analytics_to_dict(analytics)
        data.update(
            project_title=project.title,
            submission_percentage=percentage(analytics.submitted_count, analytics.total_students),
            grading_percentage=percentage(analytics.graded_count, analytics.submitted_count),
            performance_summary=grading.performance_summary(finals),
        )
        return data

    async def batch_comparison(self, principal: Principal) -> List[Dict[str, Any]]:
        query = (
            select(Project, Batch.name)
            .join(Batch, Batch.id == Project.batch_id)
            .where(Project.is_active.is_(True))
            .order_by(Project.created_at.desc())
        )
        if not principal.is_admin:
            query = query.where(
                (Batch.created_by_id == principal.user_id) | (Project.assigned_by_id == principal.user_id)
            )

        rows = []
        for project, batch_name in (await self.db.execute(query)).all():
            analytics = await _find_analytics(self.db, project.id)
            if analytics is None:
                analytics = await recompute_project(self.db, project, self.clock)
            rows.append({
                "project_id": project.id,
                "project_title": project.title,
                "batch_id": project.batch_id,
                "batch_name": batch_name,
                "status": project.status,
                "total_students": analytics.total_students,
                "submitted_count": analytics.submitted_count,
                "graded_count": analytics.graded_count,
                "completion_rate": analytics.completion_rate,
                "on_time_submission_rate": analytics.on_time_submission_rate,
                "average_final_score": (analytics.final_score_stats or {}).get("average", 0),
                "grade_distribution": analytics.grade_distribution,
            })
        return rows

    async def student_performance(self, principal: Principal, student_id: str) -> Dict[str, Any]:
        student = await self.db.get(Student, student_id)
        if not student:
            raise ResourceNotFoundError("Student", student_id)
        if principal.is_student:
            require((principal.student_record_id or principal.user_id) == student.id)

        result = await self.db.execute(
            select(ProjectSubmission, Project)
            .join(Project, Project.id == ProjectSubmission.project_id)
            .where(ProjectSubmission.student_id == student_id, ProjectSubmission.is_active.is_(True))
            .order_by(ProjectSubmission.submitted_date.desc())
        )
        projects = []
        for submission, project in result.all():
            projects.append({
                "project_id": project.id,
                "project_title": project.title,
                "submission_id": submission.id,
                "status": submission.status,
                "score": submission.score,
                "max_score": project.max_score,
                "attendance_score": submission.attendance_score,
                "final_score": submission.final_score,
                "rank": submission.rank,
                "performance_grade": grading.letter_grade(submission.final_score),
                "submission_timing": submission.submission_timing,
                "timing_analysis": grading.timing_analysis(submission.days_from_deadline),
                "submitted_date": submission.submitted_date,
            })

        finals = [p["final_score"] for p in projects]
        summary = grading.summarize(finals)
        return {
            "student": {"id": student.id, "name": student.name, "roll_no": student.roll_no},
            "projects": projects,
            "summary": {
                "total_projects": len(projects),
                "graded_projects": sum(1 for f in finals if f is not None),
                "average_final_score": summary["average"],
                "best_final_score": summary["highest"],
                "overall_grade": grading.letter_grade(summary["average"]) if any(f is not None for f in finals) else None,
            },
        }
