from pydantic import BaseModel, Field
from typing import Optional


class UploadStructureRequest(BaseModel):
    gym_name: str = Field(..., min_length=1, max_length=200, description="Gym display name")
    slot_names: list[str] = Field(default_factory=list, description="One folder per content slot")
    upload_label: Optional[str] = Field(None, max_length=200, description="Per-upload folder name, UTC timestamp by default")
    root_folder_id: Optional[str] = Field(None, description="Parent folder of the gym folders")

    class Config:
        json_schema_extra = {
            "example": {
                "gym_name": "Iron Temple",
                "slot_names": ["Reel 1", "Reel 2"],
                "upload_label": None,
                "root_folder_id": None
            }
        }


class UploadStructureResponse(BaseModel):
    gym_folder_id: str
    upload_folder_id: str
    upload_label: str
    raw_footage_folder_id: str
    final_footage_folder_id: str
    raw_slot_folders: dict[str, str]
    final_slot_folders: dict[str, str]
