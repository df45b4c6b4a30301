# 成绩审核与统计服务
