from pydantic import BaseModel
from typing import Optional

class OtpSend(BaseModel):
    phone: Optional[str] = None
    countryCode: Optional[str] = None

class OtpSent(BaseModel):
    success: bool = True
    message: str
    otp: Optional[str] = None

class OtpVerify(BaseModel):
    phone: Optional[str] = None
    otp: Optional[str] = None

class OtpVerified(BaseModel):
    success: bool = True
    message: str = "Phone number verified successfully"
    token: str

class RollVerify(BaseModel):
    rollNumber: Optional[str] = None
    token: Optional[str] = None

class StudentInfo(BaseModel):
    name: str
    rollNumber: str
    branch: Optional[str] = None
    college: Optional[str] = None
    courseId: Optional[str] = None
    university: Optional[str] = None

class SessionClaimed(BaseModel):
    success: bool = True
    message: str = "Login successful"
    studentName: str
    expiresAt: str
    studentInfo: StudentInfo
