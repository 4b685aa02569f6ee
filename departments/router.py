from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import orm
from typing import List
from config.database import get_db
from shared_utils.workspace import get_workspace_id
from .models import Department
from .schema import DepartmentCreate, DepartmentUpdate, DepartmentResponse
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


def _get_department(db: orm.Session, department_id: str, workspace_id: str) -> Department:
    department = db.query(Department).filter(
        Department.id == department_id,
        Department.workspace_id == workspace_id
    ).first()
    if not department:
        raise HTTPException(status_code=404, detail="Department not found")
    return department


@router.post("/departments", response_model=DepartmentResponse)
def create_department(body: DepartmentCreate, workspace_id: str = Depends(get_workspace_id), db: orm.Session = Depends(get_db)):
    department = Department(workspace_id=workspace_id, **body.model_dump())
    db.add(department)
    db.commit()
    db.refresh(department)
    return department


@router.get("/departments", response_model=List[DepartmentResponse])
def list_departments(workspace_id: str = Depends(get_workspace_id), db: orm.Session = Depends(get_db)):
    return db.query(Department).filter(Department.workspace_id == workspace_id).order_by(Department.name).all()


@router.patch("/departments/{department_id}", response_model=DepartmentResponse)
def update_department(
    department_id: str,
    body: DepartmentUpdate,
    workspace_id: str = Depends(get_workspace_id),
    db: orm.Session = Depends(get_db)
):
    department = _get_department(db, department_id, workspace_id)
    for key, value in body.model_dump(exclude_unset=True).items():
        setattr(department, key, value)
    db.commit()
    db.refresh(department)
    return department


@router.delete("/departments/{department_id}")
def delete_department(department_id: str, workspace_id: str = Depends(get_workspace_id), db: orm.Session = Depends(get_db)):
    department = _get_department(db, department_id, workspace_id)
    try:
        db.delete(department)
        db.commit()
        return {"message": "Department deleted successfully"}
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Error deleting department {department_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Error deleting department")
