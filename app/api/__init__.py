# API路由
